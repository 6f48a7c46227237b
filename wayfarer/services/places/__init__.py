from .service import (
    FoursquarePlacesService,
    PlacesService,
    normalize_places,
    place_to_activity,
    place_to_details,
    place_to_food_venue,
    place_to_location,
    place_to_stay,
    to_operating_hours,
)

__all__ = [
    "FoursquarePlacesService",
    "PlacesService",
    "normalize_places",
    "place_to_activity",
    "place_to_details",
    "place_to_food_venue",
    "place_to_location",
    "place_to_stay",
    "to_operating_hours",
]
