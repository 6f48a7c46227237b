"""Cache key builders.

Keys must be deterministic and collision-resistant:

- Coordinates are rounded before use, so requests a few meters apart share
  an entry. Two decimals (about 1.1 km) for weather, places and timezones;
  four for reverse geocoding; five (about 1 m) for routing endpoints.
- Multi-value parameters are de-duplicated and sorted, so request order
  never creates distinct entries.
- Free-text queries are trimmed and case-folded.

Example:
    >>> weather_key(37.7749, -122.4194, "2024-06-01", "forecast")
    'weather:forecast:37.77:-122.42:2024-06-01'
"""

from collections.abc import Iterable


def round_coord(value: float, places: int = 2) -> str:
    """Format a coordinate at fixed precision, normalizing ``-0.00`` to ``0.00``."""
    rounded = round(value, places)
    if rounded == 0:
        rounded = 0.0
    return f"{rounded:.{places}f}"


def normalize_query(text: str) -> str:
    return " ".join(text.split()).casefold()


def join_sorted(values: Iterable[str]) -> str:
    return ",".join(sorted(set(values)))


def weather_key(lat: float, lon: float, date: str, kind: str) -> str:
    """Key for one day of weather; ``kind`` is forecast, historical or prediction."""
    return f"weather:{kind}:{round_coord(lat)}:{round_coord(lon)}:{date}"


def weather_range_key(lat: float, lon: float, dates: Iterable[str], kind: str) -> str:
    """Key for a multi-date weather fetch, independent of date order."""
    return f"weather:{kind}:{round_coord(lat)}:{round_coord(lon)}:[{join_sorted(dates)}]"


def city_search_key(query: str, limit: int) -> str:
    return f"cities:{normalize_query(query)}:{limit}"


def geocode_key(address: str) -> str:
    return f"geocode:{normalize_query(address)}"


def reverse_geocode_key(lat: float, lon: float) -> str:
    return f"geocode:reverse:{round_coord(lat, 4)}:{round_coord(lon, 4)}"


def timezone_key(lat: float, lon: float) -> str:
    return f"timezone:{round_coord(lat)}:{round_coord(lon)}"


def places_key(
    kind: str,
    lat: float | None,
    lon: float | None,
    query: str | None = None,
    limit: int | None = None,
    radius: int | None = None,
    filters: Iterable[str] = (),
) -> str:
    """Key for a places search (``kind`` is food, attractions or lodging)."""
    where = f"{round_coord(lat)}:{round_coord(lon)}" if lat is not None and lon is not None else "anywhere"
    text = normalize_query(query) if query else "*"
    return f"places:{kind}:{where}:{text}:{limit or ''}:{radius or ''}:[{join_sorted(filters)}]"


def place_details_key(place_id: str) -> str:
    return f"places:details:{place_id.strip()}"


def flight_route_key(callsign: str) -> str:
    return f"flight:route:{callsign.upper()}"


def airline_search_key(query: str) -> str:
    return f"airline:search:{query.strip().upper()}"


def routing_key(
    from_lat: float,
    from_lon: float,
    to_lat: float,
    to_lon: float,
    mode: str,
) -> str:
    return (
        f"routing:{mode}:{round_coord(from_lat, 5)},{round_coord(from_lon, 5)}:"
        f"{round_coord(to_lat, 5)},{round_coord(to_lon, 5)}"
    )


def forecast_key(lat: float, lon: float) -> str:
    """Key for the full multi-day forecast at a location."""
    return f"weather:forecast:{round_coord(lat)}:{round_coord(lon)}:all"
