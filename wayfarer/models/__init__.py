"""Wayfarer data models."""

from .core import (
    Activity,
    ActivityCategory,
    Address,
    Airline,
    CitySearchResult,
    DayHours,
    FlightSearchResult,
    FoodVenue,
    FoodVenueType,
    GeocodingResult,
    GeoLocation,
    Location,
    OperatingHours,
    PlaceDetails,
    Stay,
    StayType,
    TravelEstimate,
    TravelMode,
    WeatherCondition,
    WeatherConditionType,
)
from .errors import AppError, ErrorCode

__all__ = [
    "Activity",
    "ActivityCategory",
    "Address",
    "Airline",
    "AppError",
    "CitySearchResult",
    "DayHours",
    "ErrorCode",
    "FlightSearchResult",
    "FoodVenue",
    "FoodVenueType",
    "GeocodingResult",
    "GeoLocation",
    "Location",
    "OperatingHours",
    "PlaceDetails",
    "Stay",
    "StayType",
    "TravelEstimate",
    "TravelMode",
    "WeatherCondition",
    "WeatherConditionType",
]
