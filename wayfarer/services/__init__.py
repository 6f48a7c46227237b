"""Wayfarer Services.

Service layer components:
- Cache: typed in-memory cache with per-type TTL and request de-duplication
- HTTP: shared vendor client driven through retry-with-backoff
- Weather: Open-Meteo forecasts, history and long-range estimates
- Geocoding: Geoapify city search, geocoding and timezone lookup
- Places: Foursquare food, attractions, lodging and place details
- Flights: adsbdb flight routes and airlines
- Routing: OSRM travel times with straight-line fallback
"""

from .cache import CACHE_TTL, CacheStats, CacheType, TypedCache
from .container import ServiceContainer, build_services
from .flights import AdsbdbFlightService, FlightService
from .geocoding import GeoapifyGeocodingService, GeocodingService
from .http import VendorHttpClient
from .places import FoursquarePlacesService, PlacesService
from .routing import OSRMRoutingService, RoutingService
from .weather import OpenMeteoWeatherService, WeatherService

__all__ = [
    # Cache
    "CACHE_TTL",
    "CacheStats",
    "CacheType",
    "TypedCache",
    # Wiring
    "ServiceContainer",
    "VendorHttpClient",
    "build_services",
    # Adapters
    "AdsbdbFlightService",
    "FlightService",
    "FoursquarePlacesService",
    "GeoapifyGeocodingService",
    "GeocodingService",
    "OSRMRoutingService",
    "OpenMeteoWeatherService",
    "PlacesService",
    "RoutingService",
    "WeatherService",
]
