"""Core domain models for Wayfarer.

Every vendor adapter normalizes its payloads into these Pydantic models so
route handlers and clients see one shape regardless of the data source.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class GeoLocation(BaseModel):
    """Geographic coordinates with validation."""

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")


class Address(BaseModel):
    """Postal address, as complete as the vendor provides."""

    street: str = ""
    city: str = ""
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = ""
    formatted: str = ""


class Location(BaseModel):
    """A named place with an address and coordinates."""

    name: str
    address: Address = Field(default_factory=Address)
    geo: GeoLocation
    place_id: Optional[str] = Field(None, description="Vendor place identifier")
    timezone: Optional[str] = Field(None, description="IANA timezone name")


# ─── Weather ───


class WeatherConditionType(str, Enum):
    """Simplified weather condition buckets."""

    CLEAR = "clear"
    MOSTLY_CLEAR = "mostly_clear"
    PARTLY_CLOUDY = "partly_cloudy"
    OVERCAST = "overcast"
    FOG = "fog"
    DRIZZLE = "drizzle"
    RAIN = "rain"
    SNOW = "snow"
    STORM = "storm"


class WeatherCondition(BaseModel):
    """Daily weather for one location and date.

    Temperatures are Celsius, wind speed km/h, precipitation is a 0-100
    likelihood percentage.
    """

    date: str = Field(..., description="Date (YYYY-MM-DD)")
    location: Location
    temp_high: float
    temp_low: float
    condition: WeatherConditionType
    precipitation: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    uv_index: Optional[float] = None
    sunrise: Optional[str] = Field(None, description="Local time (HH:MM)")
    sunset: Optional[str] = Field(None, description="Local time (HH:MM)")
    is_historical: bool = Field(False, description="Observed data for a past date")
    is_estimate: bool = Field(
        False, description="Far-future estimate averaged from previous years"
    )


# ─── Geocoding ───


class CitySearchResult(BaseModel):
    """A city matched by name search."""

    id: str
    name: str
    country: str
    state: Optional[str] = None
    county: Optional[str] = None
    formatted: Optional[str] = None
    location: GeoLocation
    timezone: str = "UTC"
    population: Optional[int] = None


class GeocodingResult(BaseModel):
    """Forward geocoding match with the vendor's confidence score."""

    location: Location
    confidence: float = Field(..., ge=0, le=1)


# ─── Places ───


class DayHours(BaseModel):
    """Opening hours for one weekday (HHMM strings as the vendor reports them)."""

    open: str = ""
    close: str = ""
    closed: bool = False


class OperatingHours(BaseModel):
    """Weekly opening hours."""

    monday: Optional[DayHours] = None
    tuesday: Optional[DayHours] = None
    wednesday: Optional[DayHours] = None
    thursday: Optional[DayHours] = None
    friday: Optional[DayHours] = None
    saturday: Optional[DayHours] = None
    sunday: Optional[DayHours] = None


class FoodVenueType(str, Enum):
    RESTAURANT = "restaurant"
    CAFE = "cafe"
    BAR = "bar"
    BAKERY = "bakery"
    STREET_FOOD = "street_food"
    FOOD_MARKET = "food_market"
    FINE_DINING = "fine_dining"
    FAST_FOOD = "fast_food"
    OTHER = "other"


class ActivityCategory(str, Enum):
    SIGHTSEEING = "sightseeing"
    MUSEUM = "museum"
    TOUR = "tour"
    OUTDOOR = "outdoor"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    WELLNESS = "wellness"
    NIGHTLIFE = "nightlife"
    SPORTS = "sports"
    OTHER = "other"


class StayType(str, Enum):
    HOTEL = "hotel"
    AIRBNB = "airbnb"
    VRBO = "vrbo"
    HOSTEL = "hostel"
    CUSTOM = "custom"


class FoodVenue(BaseModel):
    """A restaurant, cafe, bar or similar."""

    id: str
    name: str
    venue_type: FoodVenueType = FoodVenueType.RESTAURANT
    cuisine_types: list[str] = Field(default_factory=list)
    location: Location
    price_level: Optional[int] = Field(None, ge=1, le=4)
    rating: Optional[float] = Field(None, ge=0, le=5)
    website: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[OperatingHours] = None
    images: list[str] = Field(default_factory=list)


class Activity(BaseModel):
    """An attraction or activity."""

    id: str
    name: str
    category: ActivityCategory = ActivityCategory.SIGHTSEEING
    location: Location
    description: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    website: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[OperatingHours] = None
    category_tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class Stay(BaseModel):
    """A lodging option found by search.

    Booking details (dates, confirmation number) belong to the trip, not to
    search results, so they are optional here.
    """

    id: str
    type: StayType = StayType.HOTEL
    name: str
    location: Location
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    price_level: Optional[int] = Field(None, ge=1, le=4)
    rating: Optional[float] = Field(None, ge=0, le=5)
    website: Optional[str] = None
    phone: Optional[str] = None
    amenities: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class PlaceDetails(BaseModel):
    """Detailed information for a single place."""

    id: str
    name: str
    location: Location
    categories: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    price_level: Optional[int] = Field(None, ge=1, le=4)
    website: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[OperatingHours] = None
    tips: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


# ─── Flights ───


class Airline(BaseModel):
    name: str
    code: str = Field(..., description="IATA code, or ICAO when no IATA code exists")
    icao_code: Optional[str] = None
    country: Optional[str] = None


class FlightSearchResult(BaseModel):
    """Route information for a flight number.

    The route source carries no schedule, so times stay empty until the user
    fills them in.
    """

    airline: str
    airline_code: str
    flight_number: str
    origin: Location
    destination: Location
    departure_date: str
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None


# ─── Routing ───


class TravelMode(str, Enum):
    DRIVING = "driving"
    WALKING = "walking"
    BICYCLING = "bicycling"
    TRANSIT = "transit"


class TravelEstimate(BaseModel):
    """Travel time and distance between two locations."""

    mode: TravelMode
    duration: int = Field(..., ge=0, description="Duration in minutes")
    distance: float = Field(..., ge=0, description="Distance in kilometers")
    is_estimate: bool = Field(
        ..., description="Derived from straight-line distance rather than a router"
    )
