"""Places search using the Foursquare Places API.

Provides food venues, attractions, lodging and single-place details. Requires
``FOURSQUARE_API_KEY``; without it every call raises a
``MISSING_CONFIGURATION`` error.

Foursquare rates places 0-10; ratings are halved to the 0-5 scale used by
the domain models. Place ids are prefixed with ``fsq-`` so clients can tell
the source apart.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, Optional, TypeVar
from urllib.parse import quote

from wayfarer.models import (
    Activity,
    ActivityCategory,
    Address,
    DayHours,
    FoodVenue,
    FoodVenueType,
    GeoLocation,
    Location,
    OperatingHours,
    PlaceDetails,
    Stay,
    StayType,
)
from wayfarer.resilience.errors import ErrorKind, UpstreamError
from wayfarer.resilience.retry import RetryConfig
from wayfarer.services.cache import CacheType, TypedCache
from wayfarer.services.cache.keys import place_details_key, places_key
from wayfarer.services.http import VendorHttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

VENDOR = "foursquare"

SEARCH_URL = "https://api.foursquare.com/v3/places/search"
DETAILS_URL = "https://api.foursquare.com/v3/places"

ID_PREFIX = "fsq-"
MAX_IMAGES = 5

SEARCH_FIELDS = "fsq_id,name,categories,location,geocodes,rating,price,hours,tel,website,photos"
DETAIL_FIELDS = SEARCH_FIELDS + ",description,tips"

# Foursquare taxonomy ids
FOOD_CATEGORIES: dict[str, FoodVenueType] = {
    "13065": FoodVenueType.RESTAURANT,
    "13034": FoodVenueType.CAFE,
    "13003": FoodVenueType.BAR,
    "13014": FoodVenueType.BAKERY,
    "13145": FoodVenueType.FAST_FOOD,
    "13272": FoodVenueType.RESTAURANT,  # Pizzeria
    "13302": FoodVenueType.RESTAURANT,  # Seafood
    "13199": FoodVenueType.RESTAURANT,  # Asian
    "13236": FoodVenueType.RESTAURANT,  # Italian
    "13263": FoodVenueType.RESTAURANT,  # Mexican
}
# Only used to classify results, not sent as a search filter
FINE_DINING_CATEGORY = "13338"

ATTRACTION_CATEGORIES: dict[str, ActivityCategory] = {
    "10027": ActivityCategory.MUSEUM,
    "16000": ActivityCategory.SIGHTSEEING,  # Landmarks and outdoors
    "10002": ActivityCategory.OUTDOOR,  # Park
    "10056": ActivityCategory.ENTERTAINMENT,  # Performing arts venue
    "16026": ActivityCategory.SIGHTSEEING,  # Monument
    "10032": ActivityCategory.MUSEUM,  # Art gallery
    "10004": ActivityCategory.OUTDOOR,  # Garden
    "16020": ActivityCategory.SIGHTSEEING,  # Historic site
    "10007": ActivityCategory.OUTDOOR,  # Zoo
    "10003": ActivityCategory.OUTDOOR,  # Aquarium
}

LODGING_CATEGORIES = ("19014",)  # Lodging (hotels, hostels, B&Bs)

DEFAULT_LIMIT = 20
DEFAULT_FOOD_RADIUS = 5000
DEFAULT_ATTRACTION_RADIUS = 10000

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


# ─── Normalization ───


def _category_ids(place: dict) -> list[str]:
    return [str(c.get("id")) for c in place.get("categories") or [] if isinstance(c, dict)]


def _category_names(place: dict) -> list[str]:
    return [c["name"] for c in place.get("categories") or [] if isinstance(c, dict) and c.get("name")]


def _geo(place: dict) -> Optional[GeoLocation]:
    main = (place.get("geocodes") or {}).get("main") or {}
    if main.get("latitude") is None or main.get("longitude") is None:
        return None
    return GeoLocation(latitude=main["latitude"], longitude=main["longitude"])


def _rating(place: dict) -> Optional[float]:
    rating = place.get("rating")
    if not rating:
        return None
    return min(5.0, round(float(rating) / 2, 1))


def _price_level(place: dict) -> Optional[int]:
    price = place.get("price")
    if isinstance(price, int) and 1 <= price <= 4:
        return price
    return None


def _images(place: dict) -> list[str]:
    photos = place.get("photos") or []
    return [
        f"{photo['prefix']}original{photo['suffix']}"
        for photo in photos[:MAX_IMAGES]
        if photo.get("prefix") and photo.get("suffix")
    ]


def to_operating_hours(hours: Optional[dict]) -> Optional[OperatingHours]:
    """Convert Foursquare ``hours.regular`` (day 1 = Monday) to weekly hours.

    Days without an entry are marked closed. Returns None when the vendor
    has no regular hours.
    """
    regular = (hours or {}).get("regular") or []
    if not regular:
        return None

    week = {day: DayHours(closed=True) for day in WEEKDAYS}
    for entry in regular:
        day = entry.get("day")
        if isinstance(day, int) and 1 <= day <= 7:
            week[WEEKDAYS[day - 1]] = DayHours(
                open=entry.get("open") or "", close=entry.get("close") or ""
            )
    return OperatingHours(**week)


def place_to_location(place: dict, geo: Optional[GeoLocation] = None) -> Location:
    loc = place.get("location") or {}
    return Location(
        name=place.get("name") or "Unknown",
        address=Address(
            street=loc.get("address") or "",
            city=loc.get("locality") or "",
            state=loc.get("region"),
            postal_code=loc.get("postcode"),
            country=loc.get("country") or "",
            formatted=loc.get("formatted_address") or place.get("name") or "",
        ),
        geo=geo or _geo(place) or GeoLocation(latitude=0, longitude=0),
        place_id=place.get("fsq_id"),
    )


def place_to_food_venue(place: dict) -> FoodVenue:
    ids = _category_ids(place)
    primary = ids[0] if ids else ""
    if primary == FINE_DINING_CATEGORY:
        venue_type = FoodVenueType.FINE_DINING
    else:
        venue_type = FOOD_CATEGORIES.get(primary, FoodVenueType.RESTAURANT)

    return FoodVenue(
        id=f"{ID_PREFIX}{place['fsq_id']}",
        name=place.get("name") or "Unknown",
        venue_type=venue_type,
        cuisine_types=_category_names(place),
        location=place_to_location(place),
        price_level=_price_level(place),
        rating=_rating(place),
        website=place.get("website"),
        phone=place.get("tel"),
        opening_hours=to_operating_hours(place.get("hours")),
        images=_images(place),
    )


def _description(place: dict) -> Optional[str]:
    if place.get("description"):
        return place["description"]
    tips = place.get("tips") or []
    return tips[0].get("text") if tips and isinstance(tips[0], dict) else None


def place_to_activity(place: dict) -> Activity:
    ids = _category_ids(place)
    return Activity(
        id=f"{ID_PREFIX}{place['fsq_id']}",
        name=place.get("name") or "Unknown",
        category=ATTRACTION_CATEGORIES.get(ids[0] if ids else "", ActivityCategory.SIGHTSEEING),
        location=place_to_location(place),
        description=_description(place),
        rating=_rating(place),
        website=place.get("website"),
        phone=place.get("tel"),
        opening_hours=to_operating_hours(place.get("hours")),
        category_tags=_category_names(place),
        images=_images(place),
    )


def place_to_stay(place: dict) -> Stay:
    names = [name.lower() for name in _category_names(place)]
    stay_type = StayType.HOSTEL if any("hostel" in name for name in names) else StayType.HOTEL
    return Stay(
        id=f"{ID_PREFIX}{place['fsq_id']}",
        type=stay_type,
        name=place.get("name") or "Unknown",
        location=place_to_location(place),
        price_level=_price_level(place),
        rating=_rating(place),
        website=place.get("website"),
        phone=place.get("tel"),
        amenities=_category_names(place),
        images=_images(place),
    )


def place_to_details(place: dict) -> PlaceDetails:
    tips = [tip["text"] for tip in place.get("tips") or [] if isinstance(tip, dict) and tip.get("text")]
    return PlaceDetails(
        id=f"{ID_PREFIX}{place['fsq_id']}",
        name=place.get("name") or "Unknown",
        location=place_to_location(place),
        categories=_category_names(place),
        description=place.get("description"),
        rating=_rating(place),
        price_level=_price_level(place),
        website=place.get("website"),
        phone=place.get("tel"),
        opening_hours=to_operating_hours(place.get("hours")),
        tips=tips,
        images=_images(place),
    )


def _results(payload: Any) -> list[dict]:
    if not isinstance(payload, dict) or not isinstance(payload.get("results", []), list):
        raise UpstreamError(ErrorKind.INVALID_RESPONSE, "Foursquare search response malformed", vendor=VENDOR)
    # Places without coordinates cannot be placed on an itinerary
    return [
        place
        for place in payload.get("results") or []
        if isinstance(place, dict) and place.get("fsq_id") and _geo(place) is not None
    ]


def normalize_places(payload: Any, convert: Callable[[dict], T]) -> list[T]:
    """Convert every usable search result; a malformed place fails the whole response."""
    try:
        return [convert(place) for place in _results(payload)]
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError(
            ErrorKind.INVALID_RESPONSE, f"Foursquare place malformed: {e}", vendor=VENDOR
        ) from e


# ─── Service ───


class PlacesService(ABC):
    """Abstract base class for places search."""

    @abstractmethod
    async def search_food_venues(
        self,
        lat: Optional[float],
        lon: Optional[float],
        query: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        radius: int = DEFAULT_FOOD_RADIUS,
        price_levels: Optional[Iterable[int]] = None,
    ) -> list[FoodVenue]:
        pass

    @abstractmethod
    async def search_attractions(
        self,
        lat: Optional[float],
        lon: Optional[float],
        query: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        radius: int = DEFAULT_ATTRACTION_RADIUS,
        categories: Optional[Iterable[ActivityCategory]] = None,
    ) -> list[Activity]:
        pass

    @abstractmethod
    async def search_lodging(
        self,
        query: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        limit: int = DEFAULT_LIMIT,
        radius: Optional[int] = None,
    ) -> list[Stay]:
        pass

    @abstractmethod
    async def get_place_details(self, place_id: str) -> Optional[PlaceDetails]:
        pass


class FoursquarePlacesService(PlacesService):
    """Foursquare Places adapter."""

    SEARCH_RETRY = RetryConfig(max_attempts=3)
    DETAILS_RETRY = RetryConfig(max_attempts=2)

    def __init__(self, http: VendorHttpClient, cache: TypedCache, api_key: Optional[str] = None) -> None:
        self._http = http
        self._cache = cache
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise UpstreamError(
                ErrorKind.MISSING_CONFIGURATION, "FOURSQUARE_API_KEY is not set", vendor=VENDOR
            )
        return {"Authorization": self._api_key, "Accept": "application/json"}

    async def _search(self, params: dict[str, Any], convert: Callable[[dict], T]) -> list[T]:
        payload = await self._http.get_json(
            SEARCH_URL,
            params=params,
            headers=self._headers(),
            vendor=VENDOR,
            retry=self.SEARCH_RETRY,
        )
        return normalize_places(payload, convert)

    async def search_food_venues(
        self,
        lat: Optional[float],
        lon: Optional[float],
        query: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        radius: int = DEFAULT_FOOD_RADIUS,
        price_levels: Optional[Iterable[int]] = None,
    ) -> list[FoodVenue]:
        """Search restaurants, cafes and bars near a location.

        Args:
            lat, lon: Search center. Without it the result is empty.
            query: Optional free-text filter.
            limit: Maximum results requested from the vendor.
            radius: Search radius in meters.
            price_levels: Keep only venues at these price levels (1-4).
        """
        if lat is None or lon is None:
            return []
        self._headers()
        levels = sorted(set(price_levels or ()))

        async def fetch() -> list[FoodVenue]:
            params: dict[str, Any] = {
                "ll": f"{lat},{lon}",
                "categories": ",".join(FOOD_CATEGORIES),
                "limit": limit,
                "radius": radius,
                "fields": SEARCH_FIELDS,
            }
            if query:
                params["query"] = query
            venues = await self._search(params, place_to_food_venue)
            if levels:
                venues = [venue for venue in venues if venue.price_level in levels]
            logger.info(f"[FOURSQUARE] Food search ({lat:.2f}, {lon:.2f}): {len(venues)} venue(s)")
            return venues

        key = places_key("food", lat, lon, query, limit, radius, [str(level) for level in levels])
        try:
            return await self._cache.dedupe_request(key, fetch, CacheType.PLACES_FOOD)
        except UpstreamError as e:
            logger.warning(f"[FOURSQUARE] Food search failed for ({lat}, {lon}): {e.message}")
            raise

    async def search_attractions(
        self,
        lat: Optional[float],
        lon: Optional[float],
        query: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        radius: int = DEFAULT_ATTRACTION_RADIUS,
        categories: Optional[Iterable[ActivityCategory]] = None,
    ) -> list[Activity]:
        """Search museums, landmarks, parks and similar near a location."""
        if lat is None or lon is None:
            return []
        self._headers()
        wanted = sorted({ActivityCategory(category) for category in categories or ()}, key=lambda c: c.value)

        async def fetch() -> list[Activity]:
            params: dict[str, Any] = {
                "ll": f"{lat},{lon}",
                "categories": ",".join(ATTRACTION_CATEGORIES),
                "limit": limit,
                "radius": radius,
                "fields": DETAIL_FIELDS,
            }
            if query:
                params["query"] = query
            activities = await self._search(params, place_to_activity)
            if wanted:
                activities = [activity for activity in activities if activity.category in wanted]
            logger.info(
                f"[FOURSQUARE] Attraction search ({lat:.2f}, {lon:.2f}): {len(activities)} result(s)"
            )
            return activities

        key = places_key("attractions", lat, lon, query, limit, radius, [c.value for c in wanted])
        try:
            return await self._cache.dedupe_request(key, fetch, CacheType.PLACES_ATTRACTIONS)
        except UpstreamError as e:
            logger.warning(f"[FOURSQUARE] Attraction search failed for ({lat}, {lon}): {e.message}")
            raise

    async def search_lodging(
        self,
        query: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        limit: int = DEFAULT_LIMIT,
        radius: Optional[int] = None,
    ) -> list[Stay]:
        """Search hotels and hostels by name, optionally biased to a location."""
        self._headers()
        located = lat is not None and lon is not None

        async def fetch() -> list[Stay]:
            params: dict[str, Any] = {
                "query": query,
                "categories": ",".join(LODGING_CATEGORIES),
                "limit": limit,
                "fields": SEARCH_FIELDS,
            }
            if located:
                params["ll"] = f"{lat},{lon}"
                if radius:
                    params["radius"] = radius
            stays = await self._search(params, place_to_stay)
            logger.info(f"[FOURSQUARE] Lodging search '{query}': {len(stays)} result(s)")
            return stays

        key = places_key(
            "lodging",
            lat if located else None,
            lon if located else None,
            query,
            limit,
            radius if located else None,
        )
        try:
            return await self._cache.dedupe_request(key, fetch, CacheType.PLACES_LODGING)
        except UpstreamError as e:
            logger.warning(f"[FOURSQUARE] Lodging search failed for '{query}': {e.message}")
            raise

    async def get_place_details(self, place_id: str) -> Optional[PlaceDetails]:
        """Full details for one place. Returns None for an unknown id."""
        fsq_id = place_id.strip()
        if fsq_id.startswith(ID_PREFIX):
            fsq_id = fsq_id[len(ID_PREFIX):]
        headers = self._headers()

        async def fetch() -> Optional[PlaceDetails]:
            try:
                place = await self._http.get_json(
                    f"{DETAILS_URL}/{quote(fsq_id, safe='')}",
                    params={"fields": DETAIL_FIELDS},
                    headers=headers,
                    vendor=VENDOR,
                    retry=self.DETAILS_RETRY,
                )
            except UpstreamError as e:
                if e.status_code == 404:
                    logger.info(f"[FOURSQUARE] Place {fsq_id} not found")
                    return None
                raise
            if not isinstance(place, dict) or not place.get("fsq_id"):
                raise UpstreamError(
                    ErrorKind.INVALID_RESPONSE, "Foursquare details response malformed", vendor=VENDOR
                )
            try:
                return place_to_details(place)
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamError(
                    ErrorKind.INVALID_RESPONSE, f"Foursquare place malformed: {e}", vendor=VENDOR
                ) from e

        try:
            return await self._cache.dedupe_request(
                place_details_key(fsq_id), fetch, CacheType.PLACE_DETAILS
            )
        except UpstreamError as e:
            logger.warning(f"[FOURSQUARE] Place details failed for {fsq_id}: {e.message}")
            raise
