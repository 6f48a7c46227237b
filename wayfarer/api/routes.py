"""API routes for Wayfarer.

Every route follows the same sequence:
1. Rate limit the caller for the route's category (429 when exhausted)
2. Validate query parameters (400 with a specific message)
3. Call the vendor adapter and map its failures onto HTTP responses

Query parameters are read as raw strings and validated here, so malformed
input yields the same 400 envelope as every other validation failure and is
only examined after the rate limit has been applied.
"""

import logging
import math
import re
from collections.abc import Awaitable
from typing import Optional, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from wayfarer.models import (
    Activity,
    ActivityCategory,
    Address,
    Airline,
    CitySearchResult,
    ErrorCode,
    FlightSearchResult,
    FoodVenue,
    GeocodingResult,
    GeoLocation,
    Location,
    PlaceDetails,
    Stay,
    TravelEstimate,
    TravelMode,
    WeatherCondition,
)
from wayfarer.resilience.errors import ErrorKind, UpstreamError
from wayfarer.resilience.rate_limit import get_client_ip
from wayfarer.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DEFAULT_UPSTREAM_RETRY_AFTER = 60


# ─── Errors ───


class ApiError(Exception):
    """An error response in the standard envelope.

    Rendered by the handler registered in ``wayfarer.main``.
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        user_message: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.user_message = user_message or message
        self.headers = headers or {}


def bad_request(message: str) -> ApiError:
    return ApiError(400, ErrorCode.VALIDATION_ERROR, message)


def upstream_to_api_error(error: UpstreamError, service: str) -> ApiError:
    """Map a vendor failure onto the HTTP response the client sees.

    The response never names credentials or vendor internals.
    """
    if error.kind is ErrorKind.RATE_LIMITED:
        retry_after = (
            math.ceil(error.retry_after) if error.retry_after else DEFAULT_UPSTREAM_RETRY_AFTER
        )
        return ApiError(
            503,
            ErrorCode.UPSTREAM_RATE_LIMITED,
            "External API rate limit exceeded",
            user_message=f"{service} is busy right now. Please try again shortly.",
            headers={"Retry-After": str(retry_after)},
        )
    if error.kind is ErrorKind.MISSING_CONFIGURATION:
        return ApiError(500, ErrorCode.NOT_CONFIGURED, f"{service} service not configured")
    return ApiError(500, ErrorCode.SERVICE_ERROR, f"{service} service error")


# ─── Helpers ───


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def rate_limit(request: Request, category: str) -> ServiceContainer:
    """Count this request against the caller's budget for ``category``.

    The resulting headers are stored on ``request.state`` and attached to
    the response, success or error.
    """
    services = get_services(request)
    limiter = services.rate_limiter
    peer = request.client.host if request.client else None
    client_id = get_client_ip(request.headers, peer, trust_proxy=services.settings.trust_proxy)

    allowed = limiter.check(client_id, category)
    request.state.rate_limit_headers = limiter.get_headers(client_id, category)
    if not allowed:
        raise ApiError(
            429,
            ErrorCode.RATE_LIMITED,
            "Too many requests",
            user_message="You're making requests too quickly. Please wait a minute.",
        )
    return services


async def call_upstream(service: str, awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except UpstreamError as e:
        logger.warning(f"[API] {service} failed: {e!r}")
        raise upstream_to_api_error(e, service) from e


def parse_float(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Optional[str], default: int, low: int, high: int, message: str) -> int:
    if value is None or not value.strip():
        return default
    try:
        number = int(value)
    except ValueError:
        raise bad_request(message)
    if number < low or number > high:
        raise bad_request(message)
    return number


def require_coordinates(lat: Optional[str], lon: Optional[str], message: str) -> tuple[float, float]:
    latitude = parse_float(lat)
    longitude = parse_float(lon)
    if latitude is None or longitude is None:
        raise bad_request(message)
    check_ranges(latitude, longitude)
    return latitude, longitude


def check_ranges(latitude: float, longitude: float) -> None:
    if latitude < -90 or latitude > 90:
        raise bad_request("Latitude must be between -90 and 90")
    if longitude < -180 or longitude > 180:
        raise bad_request("Longitude must be between -180 and 180")


def optional_coordinates(lat: Optional[str], lon: Optional[str]) -> tuple[Optional[float], Optional[float]]:
    """Coordinates are optional, but when either is given both must be valid."""
    if not lat and not lon:
        return None, None
    return require_coordinates(lat, lon, "Invalid lat/lon parameters")


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def parse_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def point(name: str, latitude: float, longitude: float) -> Location:
    return Location(name=name, geo=GeoLocation(latitude=latitude, longitude=longitude))


# ─── Response models ───


class WeatherResponse(BaseModel):
    success: bool = True
    weather: list[WeatherCondition]


class CitySearchResponse(BaseModel):
    success: bool = True
    results: list[CitySearchResult]


class GeocodingResponse(BaseModel):
    """Forward lookups fill ``result``, reverse lookups fill ``location``."""

    success: bool = True
    result: Optional[GeocodingResult] = None
    location: Optional[Location] = None
    message: Optional[str] = None


class FoodVenuesResponse(BaseModel):
    success: bool = True
    venues: list[FoodVenue]


class AttractionsResponse(BaseModel):
    success: bool = True
    activities: list[Activity]


class LodgingResponse(BaseModel):
    success: bool = True
    stays: list[Stay]


class PlaceDetailsResponse(BaseModel):
    success: bool = True
    place: PlaceDetails


class FlightSearchResponse(BaseModel):
    """Single lookups fill ``flight``; ``all=true`` fills ``flights``."""

    success: bool = True
    found: bool
    flight: Optional[FlightSearchResult] = None
    flights: Optional[list[FlightSearchResult]] = None


class AirlinesResponse(BaseModel):
    success: bool = True
    airlines: list[Airline]


class RoutingResponse(BaseModel):
    """Single-mode requests fill ``route``; ``all=true`` fills ``routes``."""

    success: bool = True
    route: Optional[TravelEstimate] = None
    routes: Optional[list[TravelEstimate]] = None


# ─── Weather ───


@router.get("/weather", response_model=WeatherResponse)
async def get_weather(
    request: Request,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    dates: Optional[str] = None,
    name: Optional[str] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
    timezone: Optional[str] = None,
) -> WeatherResponse:
    """Daily weather for a location and a comma-separated list of dates."""
    services = rate_limit(request, "weather")

    latitude, longitude = require_coordinates(lat, lon, "Missing or invalid lat/lon parameters")
    if not dates:
        raise bad_request("Missing dates parameter")
    wanted = [day.strip() for day in dates.split(",") if DATE_PATTERN.match(day.strip())]
    if not wanted:
        raise bad_request("No valid dates provided (expected YYYY-MM-DD format)")
    if timezone and not is_valid_timezone(timezone):
        raise bad_request(
            f"Invalid timezone: '{timezone}'. Expected IANA timezone name "
            "(e.g., 'America/New_York', 'Europe/London')"
        )

    city = city or ""
    country = country or ""
    location = Location(
        name=name or "Unknown",
        address=Address(
            city=city,
            country=country,
            formatted=", ".join(part for part in (city, country) if part),
        ),
        geo=GeoLocation(latitude=latitude, longitude=longitude),
        timezone=timezone or None,
    )

    weather = await call_upstream("Weather", services.weather.get_weather(location, wanted))
    return WeatherResponse(weather=weather)


# ─── Geocoding ───


@router.get("/cities", response_model=CitySearchResponse)
async def search_cities(
    request: Request,
    q: Optional[str] = None,
    limit: Optional[str] = None,
) -> CitySearchResponse:
    """City name search for destination pickers."""
    services = rate_limit(request, "cities")

    if not q:
        raise bad_request("Missing required parameter: q")
    if len(q.strip()) < 2:
        raise bad_request("Query must be at least 2 characters")
    count = parse_int(limit, 10, 1, 50, "Limit must be a number between 1 and 50")

    results = await call_upstream("City search", services.geocoding.search_cities(q, count))
    return CitySearchResponse(results=results)


@router.get("/geocoding", response_model=GeocodingResponse)
async def geocode(
    request: Request,
    address: Optional[str] = None,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
) -> GeocodingResponse:
    """Forward geocoding with ``address``, reverse geocoding with ``lat``/``lon``."""
    services = rate_limit(request, "geocoding")

    if address:
        if len(address.strip()) < 3:
            raise bad_request("Address must be at least 3 characters")
        result = await call_upstream("Geocoding", services.geocoding.geocode_address(address))
        if result is None:
            return GeocodingResponse(message="No results found")
        return GeocodingResponse(result=result)

    if lat and lon:
        latitude, longitude = require_coordinates(lat, lon, "Invalid lat/lon parameters")
        location = await call_upstream(
            "Geocoding", services.geocoding.reverse_geocode(latitude, longitude)
        )
        if location is None:
            return GeocodingResponse(message="No results found")
        return GeocodingResponse(location=location)

    raise bad_request('Missing required parameters. Provide either "address" or "lat" and "lon"')


# ─── Places ───


def parse_price_levels(value: Optional[str]) -> list[int]:
    """``"1,2,x,9"`` -> ``[1, 2]``; out-of-range and non-numeric entries are dropped."""
    levels = []
    for part in (value or "").split(","):
        part = part.strip()
        if part.isdigit() and 1 <= int(part) <= 4:
            levels.append(int(part))
    return levels


def parse_categories(value: Optional[str]) -> list[ActivityCategory]:
    known = {category.value for category in ActivityCategory}
    return [
        ActivityCategory(part.strip())
        for part in (value or "").split(",")
        if part.strip() in known
    ]


@router.get("/places/food", response_model=FoodVenuesResponse)
async def search_food(
    request: Request,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    query: Optional[str] = None,
    limit: Optional[str] = None,
    radius: Optional[str] = None,
    price_level: Optional[str] = Query(None, alias="priceLevel"),
) -> FoodVenuesResponse:
    """Restaurants, cafes and bars near a location."""
    services = rate_limit(request, "places")

    if not lat or not lon:
        raise bad_request("Missing required parameters: lat and lon")
    latitude, longitude = require_coordinates(lat, lon, "Invalid lat/lon parameters")
    count = parse_int(limit, 20, 1, 50, "Limit must be a number between 1 and 50")
    meters = parse_int(radius, 5000, 100, 50000, "Radius must be a number between 100 and 50000 (meters)")

    venues = await call_upstream(
        "Places",
        services.places.search_food_venues(
            latitude,
            longitude,
            query=query or None,
            limit=count,
            radius=meters,
            price_levels=parse_price_levels(price_level),
        ),
    )
    return FoodVenuesResponse(venues=venues)


@router.get("/places/attractions", response_model=AttractionsResponse)
async def search_attractions(
    request: Request,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    query: Optional[str] = None,
    limit: Optional[str] = None,
    radius: Optional[str] = None,
    categories: Optional[str] = None,
) -> AttractionsResponse:
    """Museums, landmarks, parks and similar near a location."""
    services = rate_limit(request, "places")

    if not lat or not lon:
        raise bad_request("Missing required parameters: lat and lon")
    latitude, longitude = require_coordinates(lat, lon, "Invalid lat/lon parameters")
    count = parse_int(limit, 20, 1, 50, "Limit must be a number between 1 and 50")
    meters = parse_int(radius, 10000, 100, 50000, "Radius must be a number between 100 and 50000 (meters)")

    activities = await call_upstream(
        "Places",
        services.places.search_attractions(
            latitude,
            longitude,
            query=query or None,
            limit=count,
            radius=meters,
            categories=parse_categories(categories),
        ),
    )
    return AttractionsResponse(activities=activities)


@router.get("/places/lodging", response_model=LodgingResponse)
async def search_lodging(
    request: Request,
    query: Optional[str] = None,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    limit: Optional[str] = None,
    radius: Optional[str] = None,
) -> LodgingResponse:
    """Hotels and hostels by name; ``lat``/``lon`` bias results when given."""
    services = rate_limit(request, "places")

    if not query:
        raise bad_request("Missing required parameter: query")
    if len(query.strip()) < 2:
        raise bad_request("Query must be at least 2 characters")
    latitude, longitude = optional_coordinates(lat, lon)
    count = parse_int(limit, 20, 1, 50, "Limit must be a number between 1 and 50")
    meters = (
        parse_int(radius, 0, 100, 50000, "Radius must be a number between 100 and 50000 (meters)")
        if radius
        else None
    )

    stays = await call_upstream(
        "Places",
        services.places.search_lodging(
            query, lat=latitude, lon=longitude, limit=count, radius=meters
        ),
    )
    return LodgingResponse(stays=stays)


@router.get("/places/details", response_model=PlaceDetailsResponse)
async def get_place_details(
    request: Request,
    place_id: Optional[str] = Query(None, alias="id"),
) -> PlaceDetailsResponse:
    """Full details for one place id returned by a search."""
    services = rate_limit(request, "places")

    if not place_id or not place_id.strip():
        raise bad_request("Missing required parameter: id")

    place = await call_upstream("Places", services.places.get_place_details(place_id))
    if place is None:
        raise ApiError(404, ErrorCode.NOT_FOUND, "Place not found")
    return PlaceDetailsResponse(place=place)


# ─── Flights ───


@router.get("/flights/search", response_model=FlightSearchResponse)
async def search_flight(
    request: Request,
    airline: Optional[str] = None,
    flight: Optional[str] = None,
    date: Optional[str] = None,
    show_all: Optional[str] = Query(None, alias="all"),
) -> FlightSearchResponse:
    """Route lookup by airline code and flight number."""
    services = rate_limit(request, "flights")

    if not airline or not airline.strip():
        raise bad_request("Missing airline parameter")
    if not flight or not flight.strip():
        raise bad_request("Missing flight parameter")
    if not date or not DATE_PATTERN.match(date):
        raise bad_request("Missing or invalid date parameter (expected YYYY-MM-DD format)")

    if parse_flag(show_all):
        flights = await call_upstream(
            "Flight search", services.flights.search_all_flights(airline, flight, date)
        )
        return FlightSearchResponse(found=bool(flights), flights=flights)

    result = await call_upstream("Flight search", services.flights.search_flight(airline, flight, date))
    if result is None:
        raise ApiError(
            404,
            ErrorCode.NOT_FOUND,
            "Flight not found",
            user_message="We couldn't find that flight. Check the airline code and number.",
        )
    return FlightSearchResponse(found=True, flight=result)


@router.get("/flights/airlines", response_model=AirlinesResponse)
async def search_airlines(
    request: Request,
    q: Optional[str] = None,
    query: Optional[str] = None,
) -> AirlinesResponse:
    """Airlines by IATA or ICAO code (``q`` or ``query``)."""
    services = rate_limit(request, "flights")

    text = (q or query or "").strip()
    if len(text) < 2:
        raise bad_request("Query must be at least 2 characters")

    airlines = await call_upstream("Flight search", services.flights.search_airlines(text))
    return AirlinesResponse(airlines=airlines)


# ─── Routing ───


@router.get("/routing", response_model=RoutingResponse)
async def get_route(
    request: Request,
    from_lat: Optional[str] = Query(None, alias="fromLat"),
    from_lon: Optional[str] = Query(None, alias="fromLon"),
    to_lat: Optional[str] = Query(None, alias="toLat"),
    to_lon: Optional[str] = Query(None, alias="toLon"),
    mode: Optional[str] = None,
    show_all: Optional[str] = Query(None, alias="all"),
) -> RoutingResponse:
    """Travel time between two points for one mode, or every mode with ``all=true``."""
    services = rate_limit(request, "routing")

    origin_lat, origin_lon = require_coordinates(
        from_lat, from_lon, "Missing or invalid fromLat/fromLon parameters"
    )
    dest_lat, dest_lon = require_coordinates(
        to_lat, to_lon, "Missing or invalid toLat/toLon parameters"
    )
    origin = point("Origin", origin_lat, origin_lon)
    destination = point("Destination", dest_lat, dest_lon)

    if parse_flag(show_all):
        routes = await call_upstream("Routing", services.routing.get_all_routes(origin, destination))
        return RoutingResponse(routes=routes)

    valid_modes = [m.value for m in TravelMode]
    if mode not in valid_modes:
        raise bad_request(f"Invalid mode. Must be one of: {', '.join(valid_modes)}")

    route = await call_upstream(
        "Routing", services.routing.get_route(origin, destination, TravelMode(mode))
    )
    return RoutingResponse(route=route)
