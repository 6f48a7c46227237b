"""Service container: one set of shared state per application.

The cache, the in-flight ledger, the rate-limit windows and the HTTP
connection pool all live on a ``ServiceContainer`` so that two applications
(or two tests) never share state.
"""

import logging
from dataclasses import dataclass

import httpx

from wayfarer.config import Settings
from wayfarer.resilience.clock import Clock
from wayfarer.resilience.rate_limit import RateLimiter
from wayfarer.services.cache import TypedCache
from wayfarer.services.flights import AdsbdbFlightService, FlightService
from wayfarer.services.geocoding import GeoapifyGeocodingService, GeocodingService
from wayfarer.services.http import VendorHttpClient
from wayfarer.services.places import FoursquarePlacesService, PlacesService
from wayfarer.services.routing import OSRMRoutingService, RoutingService
from wayfarer.services.weather import OpenMeteoWeatherService, WeatherService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    clock: Clock
    cache: TypedCache
    rate_limiter: RateLimiter
    http: VendorHttpClient
    weather: WeatherService
    geocoding: GeocodingService
    places: PlacesService
    flights: FlightService
    routing: RoutingService

    def housekeeping(self) -> tuple[int, int]:
        """Drop expired cache entries and idle rate-limit windows."""
        expired = self.cache.cleanup_expired()
        stale = self.rate_limiter.cleanup()
        if expired or stale:
            logger.info(f"[HOUSEKEEPING] Removed {expired} cache entries, {stale} rate-limit windows")
        return expired, stale

    async def close(self) -> None:
        await self.http.close()


def build_services(
    settings: Settings,
    clock: Clock | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceContainer:
    """Wire every adapter to one cache, limiter and HTTP client.

    Args:
        settings: Runtime configuration.
        clock: Time source shared by all components.
        transport: Optional httpx transport (tests pass a MockTransport).
    """
    clock = clock or Clock()
    cache = TypedCache(clock=clock, max_entries=settings.cache_max_entries)
    rate_limiter = RateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        default_limit=settings.rate_limit_max_default,
        limits=settings.rate_limit_max,
        clock=clock,
    )
    http = VendorHttpClient(timeout=settings.http_timeout_seconds, clock=clock, transport=transport)

    return ServiceContainer(
        settings=settings,
        clock=clock,
        cache=cache,
        rate_limiter=rate_limiter,
        http=http,
        weather=OpenMeteoWeatherService(http, cache, clock),
        geocoding=GeoapifyGeocodingService(
            http,
            cache,
            api_key=settings.geoapify_api_key,
            timezonedb_api_key=settings.timezonedb_api_key,
        ),
        places=FoursquarePlacesService(http, cache, api_key=settings.foursquare_api_key),
        flights=AdsbdbFlightService(http, cache),
        routing=OSRMRoutingService(http, cache),
    )
