"""Travel time estimates using OSRM (free, open-source routing).

Uses the public routing.openstreetmap.de servers, one per profile. OSRM has
no public transit data, so transit is always estimated from straight-line
distance. Routing never fails: if the router is unavailable or finds no
route, a haversine estimate is returned (and cached) instead.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from wayfarer.models import Location, TravelEstimate, TravelMode
from wayfarer.resilience.errors import ErrorKind, UpstreamError
from wayfarer.services.cache import CacheType, TypedCache
from wayfarer.services.cache.keys import routing_key
from wayfarer.services.http import VendorHttpClient
from wayfarer.utils.geo import haversine_distance

logger = logging.getLogger(__name__)

VENDOR = "osrm"

# Dedicated OSRM server and profile per mode
OSRM_SERVERS: dict[TravelMode, tuple[str, str]] = {
    TravelMode.DRIVING: ("https://routing.openstreetmap.de/routed-car", "car"),
    TravelMode.WALKING: ("https://routing.openstreetmap.de/routed-foot", "foot"),
    TravelMode.BICYCLING: ("https://routing.openstreetmap.de/routed-bike", "bike"),
}

# Average speeds for estimates (km/h)
AVERAGE_SPEEDS: dict[TravelMode, float] = {
    TravelMode.DRIVING: 35,
    TravelMode.WALKING: 5,
    TravelMode.BICYCLING: 15,
    TravelMode.TRANSIT: 25,
}

# Roads are typically 20-40% longer than the straight line
ROAD_FACTOR = 1.3


def calculate_estimate(origin: Location, destination: Location, mode: TravelMode) -> TravelEstimate:
    """Estimate travel from straight-line distance and an average speed."""
    straight = haversine_distance(
        origin.geo.latitude,
        origin.geo.longitude,
        destination.geo.latitude,
        destination.geo.longitude,
    )
    distance = straight * ROAD_FACTOR
    return TravelEstimate(
        mode=mode,
        duration=round(distance / AVERAGE_SPEEDS[mode] * 60),
        distance=round(distance, 2),
        is_estimate=True,
    )


def normalize_osrm_route(payload: Any, mode: TravelMode) -> TravelEstimate:
    """Convert an OSRM ``route`` response (meters, seconds) to an estimate."""
    if not isinstance(payload, dict) or payload.get("code") != "Ok" or not payload.get("routes"):
        message = payload.get("message") if isinstance(payload, dict) else None
        raise UpstreamError(
            ErrorKind.INVALID_RESPONSE, message or "OSRM returned no route", vendor=VENDOR
        )
    try:
        route = payload["routes"][0]
        return TravelEstimate(
            mode=mode,
            duration=round(route["duration"] / 60),
            distance=round(route["distance"] / 1000, 2),
            is_estimate=False,
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise UpstreamError(
            ErrorKind.INVALID_RESPONSE, f"OSRM route incomplete: {e!r}", vendor=VENDOR
        ) from e


class RoutingService(ABC):
    """Abstract base class for travel time lookups."""

    @abstractmethod
    async def get_route(
        self, origin: Location, destination: Location, mode: TravelMode
    ) -> TravelEstimate:
        pass

    @abstractmethod
    async def get_all_routes(self, origin: Location, destination: Location) -> list[TravelEstimate]:
        pass

    @abstractmethod
    def get_estimate(
        self, origin: Location, destination: Location, mode: TravelMode
    ) -> TravelEstimate:
        pass


class OSRMRoutingService(RoutingService):
    """OSRM routing adapter with estimate fallback."""

    def __init__(self, http: VendorHttpClient, cache: TypedCache) -> None:
        self._http = http
        self._cache = cache

    @staticmethod
    def _key(origin: Location, destination: Location, mode: TravelMode) -> str:
        return routing_key(
            origin.geo.latitude,
            origin.geo.longitude,
            destination.geo.latitude,
            destination.geo.longitude,
            mode.value,
        )

    async def get_route(
        self, origin: Location, destination: Location, mode: TravelMode
    ) -> TravelEstimate:
        """Route between two locations; falls back to an estimate on any vendor failure."""

        async def fetch() -> TravelEstimate:
            try:
                return await self._fetch_osrm(origin, destination, mode)
            except UpstreamError as e:
                logger.warning(f"[ROUTING] {mode.value} route failed ({e.kind.value}), using estimate")
                return calculate_estimate(origin, destination, mode)

        return await self._cache.dedupe_request(
            self._key(origin, destination, mode), fetch, CacheType.ROUTING
        )

    async def get_all_routes(self, origin: Location, destination: Location) -> list[TravelEstimate]:
        """One result per travel mode, in enum order."""
        return list(
            await asyncio.gather(*(self.get_route(origin, destination, mode) for mode in TravelMode))
        )

    def get_estimate(
        self, origin: Location, destination: Location, mode: TravelMode
    ) -> TravelEstimate:
        """Immediate answer: the cached route if any, otherwise an estimate."""
        cached = self._cache.get(self._key(origin, destination, mode))
        if cached is not None:
            return cached
        return calculate_estimate(origin, destination, mode)

    async def _fetch_osrm(
        self, origin: Location, destination: Location, mode: TravelMode
    ) -> TravelEstimate:
        server = OSRM_SERVERS.get(mode)
        if server is None:
            return calculate_estimate(origin, destination, mode)

        base_url, profile = server
        coordinates = (
            f"{origin.geo.longitude},{origin.geo.latitude};"
            f"{destination.geo.longitude},{destination.geo.latitude}"
        )
        payload = await self._http.get_json(
            f"{base_url}/route/v1/{profile}/{coordinates}",
            params={"overview": "false"},
            vendor=VENDOR,
        )
        return normalize_osrm_route(payload, mode)
