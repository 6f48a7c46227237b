from .service import (
    AdsbdbFlightService,
    FlightService,
    airport_to_location,
    make_callsign,
    route_to_flight,
    to_airline,
)

__all__ = [
    "AdsbdbFlightService",
    "FlightService",
    "airport_to_location",
    "make_callsign",
    "route_to_flight",
    "to_airline",
]
