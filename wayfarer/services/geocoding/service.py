"""Geocoding, city search and timezone lookup using Geoapify.

Geoapify requires ``GEOAPIFY_API_KEY``. Without it every lookup raises a
``MISSING_CONFIGURATION`` error, except ``get_timezone``, which always
answers: it tries reverse geocoding, then TimezoneDB (when
``TIMEZONEDB_API_KEY`` is set), then a rough zone derived from longitude.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from wayfarer.models import Address, CitySearchResult, GeocodingResult, GeoLocation, Location
from wayfarer.resilience.errors import ErrorKind, UpstreamError
from wayfarer.resilience.retry import RetryConfig
from wayfarer.services.cache import CacheType, TypedCache
from wayfarer.services.cache.keys import (
    city_search_key,
    geocode_key,
    reverse_geocode_key,
    timezone_key,
)
from wayfarer.services.http import VendorHttpClient

logger = logging.getLogger(__name__)

VENDOR = "geoapify"

GEOCODE_URL = "https://api.geoapify.com/v1/geocode/search"
REVERSE_URL = "https://api.geoapify.com/v1/geocode/reverse"
AUTOCOMPLETE_URL = "https://api.geoapify.com/v1/geocode/autocomplete"
TIMEZONEDB_URL = "https://api.timezonedb.com/v2.1/get-time-zone"

# Paris and similar cities come back as "suburb" because of their districts
CITY_RESULT_TYPES = frozenset({"city", "town", "village", "locality", "suburb"})

MIN_CITY_QUERY = 2
MIN_ADDRESS_LENGTH = 3


# ─── Normalization ───


def _features(payload: Any) -> list[dict]:
    """Extract result features from GeoJSON or ``format=json`` responses."""
    if not isinstance(payload, dict):
        raise UpstreamError(ErrorKind.INVALID_RESPONSE, "Geoapify response is not an object", vendor=VENDOR)

    if isinstance(payload.get("features"), list):
        return [
            {**(feature.get("properties") or {})}
            for feature in payload["features"]
            if isinstance(feature, dict)
        ]
    if isinstance(payload.get("results"), list):
        return [result for result in payload["results"] if isinstance(result, dict)]
    return []


def _city_name(props: dict) -> str:
    return props.get("city") or props.get("town") or props.get("village") or ""


def feature_to_address(props: dict) -> Address:
    street = props.get("street") or ""
    if street and props.get("housenumber"):
        street = f"{props['housenumber']} {street}"

    return Address(
        street=street,
        city=_city_name(props),
        state=props.get("state"),
        postal_code=props.get("postcode"),
        country=props.get("country") or "",
        formatted=props.get("formatted") or "",
    )


def _timezone_name(props: dict) -> Optional[str]:
    tz = props.get("timezone")
    if isinstance(tz, dict):
        return tz.get("name")
    return None


def feature_to_location(props: dict, name: Optional[str] = None) -> Location:
    address = feature_to_address(props)
    return Location(
        name=name or props.get("name") or address.city or address.formatted or "Unknown",
        address=address,
        geo=GeoLocation(latitude=props["lat"], longitude=props["lon"]),
        place_id=props.get("place_id"),
        timezone=_timezone_name(props),
    )


def feature_to_city(props: dict) -> CitySearchResult:
    lat = props["lat"]
    lon = props["lon"]
    return CitySearchResult(
        # Stable across requests: derived from coordinates at ~11 m precision
        id=f"geoapify:{round(lat * 10000)}:{round(lon * 10000)}",
        name=_city_name(props) or props.get("name") or "Unknown",
        country=props.get("country") or "Unknown",
        state=props.get("state"),
        county=props.get("county"),
        formatted=props.get("formatted"),
        location=GeoLocation(latitude=lat, longitude=lon),
        timezone=_timezone_name(props) or "UTC",
        population=props.get("population"),
    )


def _confidence(props: dict) -> float:
    rank = props.get("rank")
    if isinstance(rank, dict) and rank.get("confidence") is not None:
        return max(0.0, min(1.0, float(rank["confidence"])))
    return 0.5


def longitude_timezone(lon: float) -> str:
    """Rough fixed-offset zone from longitude (POSIX sign convention)."""
    offset = round(lon / 15)
    if offset == 0:
        return "Etc/GMT"
    return f"Etc/GMT-{offset}" if offset > 0 else f"Etc/GMT+{abs(offset)}"


# ─── Service ───


class GeocodingService(ABC):
    """Abstract base class for geocoding and city search."""

    @abstractmethod
    async def search_cities(self, query: str, limit: int = 10) -> list[CitySearchResult]:
        pass

    @abstractmethod
    async def geocode_address(self, address: str) -> Optional[GeocodingResult]:
        pass

    @abstractmethod
    async def reverse_geocode(self, lat: float, lon: float) -> Optional[Location]:
        pass

    @abstractmethod
    async def get_timezone(self, lat: float, lon: float) -> str:
        pass


class GeoapifyGeocodingService(GeocodingService):
    """Geoapify geocoding adapter."""

    # Geocoding is interactive; give up sooner than the default policy
    RETRY = RetryConfig(max_attempts=3)

    def __init__(
        self,
        http: VendorHttpClient,
        cache: TypedCache,
        api_key: Optional[str] = None,
        timezonedb_api_key: Optional[str] = None,
    ) -> None:
        self._http = http
        self._cache = cache
        self._api_key = api_key
        self._timezonedb_api_key = timezonedb_api_key

    def _require_key(self) -> str:
        if not self._api_key:
            raise UpstreamError(
                ErrorKind.MISSING_CONFIGURATION, "GEOAPIFY_API_KEY is not set", vendor=VENDOR
            )
        return self._api_key

    async def _get(self, url: str, params: dict[str, Any]) -> list[dict]:
        payload = await self._http.get_json(
            url,
            params={**params, "apiKey": self._require_key()},
            vendor=VENDOR,
            retry=self.RETRY,
        )
        return _features(payload)

    async def search_cities(self, query: str, limit: int = 10) -> list[CitySearchResult]:
        """Search populated places by name (autocomplete)."""
        query = query.strip()
        if len(query) < MIN_CITY_QUERY:
            return []
        self._require_key()

        async def fetch() -> list[CitySearchResult]:
            features = await self._get(
                AUTOCOMPLETE_URL, {"text": query, "type": "city", "limit": limit}
            )
            cities = [
                feature_to_city(props)
                for props in features
                if props.get("result_type") in CITY_RESULT_TYPES
                and props.get("lat") is not None
                and props.get("lon") is not None
            ]
            logger.info(f"[GEOAPIFY] City search '{query}': {len(cities)} result(s)")
            return cities[:limit]

        try:
            return await self._cache.dedupe_request(
                city_search_key(query, limit), fetch, CacheType.CITY_SEARCH
            )
        except UpstreamError as e:
            logger.warning(f"[GEOAPIFY] City search failed for '{query}': {e.message}")
            raise

    async def geocode_address(self, address: str) -> Optional[GeocodingResult]:
        """Resolve an address to coordinates. Returns None when nothing matches."""
        address = address.strip()
        if len(address) < MIN_ADDRESS_LENGTH:
            return None
        self._require_key()

        async def fetch() -> Optional[GeocodingResult]:
            features = await self._get(GEOCODE_URL, {"text": address, "limit": 1, "format": "json"})
            if not features or features[0].get("lat") is None:
                return None
            props = features[0]
            return GeocodingResult(location=feature_to_location(props), confidence=_confidence(props))

        try:
            return await self._cache.dedupe_request(geocode_key(address), fetch, CacheType.GEOCODING)
        except UpstreamError as e:
            logger.warning(f"[GEOAPIFY] Geocoding failed for '{address}': {e.message}")
            raise

    async def reverse_geocode(self, lat: float, lon: float) -> Optional[Location]:
        """Resolve coordinates to the nearest address."""
        self._require_key()

        async def fetch() -> Optional[Location]:
            features = await self._get(REVERSE_URL, {"lat": lat, "lon": lon, "format": "json"})
            if not features or features[0].get("lat") is None:
                return None
            return feature_to_location(features[0])

        try:
            return await self._cache.dedupe_request(
                reverse_geocode_key(lat, lon), fetch, CacheType.GEOCODING
            )
        except UpstreamError as e:
            logger.warning(f"[GEOAPIFY] Reverse geocoding failed for ({lat}, {lon}): {e.message}")
            raise

    async def get_timezone(self, lat: float, lon: float) -> str:
        """IANA timezone for coordinates. Never raises."""
        key = timezone_key(lat, lon)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        zone = await self._timezone_from_geoapify(lat, lon) or await self._timezone_from_timezonedb(lat, lon)
        if zone:
            self._cache.set(key, zone, CacheType.TIMEZONE)
            return zone

        fallback = longitude_timezone(lon)
        logger.warning(f"[GEOAPIFY] Using rough timezone {fallback} for ({lat}, {lon})")
        return fallback

    async def _timezone_from_geoapify(self, lat: float, lon: float) -> Optional[str]:
        try:
            location = await self.reverse_geocode(lat, lon)
        except UpstreamError:
            return None
        return location.timezone if location else None

    async def _timezone_from_timezonedb(self, lat: float, lon: float) -> Optional[str]:
        if not self._timezonedb_api_key:
            return None
        try:
            data = await self._http.get_json(
                TIMEZONEDB_URL,
                params={
                    "key": self._timezonedb_api_key,
                    "format": "json",
                    "by": "position",
                    "lat": lat,
                    "lng": lon,
                },
                vendor="timezonedb",
                retry=self.RETRY,
            )
        except UpstreamError as e:
            logger.warning(f"[GEOAPIFY] TimezoneDB fallback failed: {e.message}")
            return None
        if isinstance(data, dict) and data.get("status") == "OK" and data.get("zoneName"):
            return data["zoneName"]
        return None
