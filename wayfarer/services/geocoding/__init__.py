from .service import (
    GeoapifyGeocodingService,
    GeocodingService,
    feature_to_address,
    feature_to_city,
    feature_to_location,
    longitude_timezone,
)

__all__ = [
    "GeoapifyGeocodingService",
    "GeocodingService",
    "feature_to_address",
    "feature_to_city",
    "feature_to_location",
    "longitude_timezone",
]
