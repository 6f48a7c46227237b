from .service import (
    AVERAGE_SPEEDS,
    ROAD_FACTOR,
    OSRMRoutingService,
    RoutingService,
    calculate_estimate,
    normalize_osrm_route,
)

__all__ = [
    "AVERAGE_SPEEDS",
    "ROAD_FACTOR",
    "OSRMRoutingService",
    "RoutingService",
    "calculate_estimate",
    "normalize_osrm_route",
]
