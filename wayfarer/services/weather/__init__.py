from .service import (
    DateCategory,
    OpenMeteoWeatherService,
    WeatherService,
    average_conditions,
    classify_date,
    map_wmo_code,
    normalize_archive,
    normalize_forecast,
    precipitation_percent,
)

__all__ = [
    "DateCategory",
    "OpenMeteoWeatherService",
    "WeatherService",
    "average_conditions",
    "classify_date",
    "map_wmo_code",
    "normalize_archive",
    "normalize_forecast",
    "precipitation_percent",
]
