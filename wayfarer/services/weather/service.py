"""Weather service using Open-Meteo (free, no API key).

Requested dates are split into three categories relative to today:
- past: observed data from the archive API
- forecast: today through the 16-day forecast horizon
- future: beyond the horizon, estimated by averaging the same calendar day
  over the previous three years

Each category is cached per date under its own TTL. The fetch for a
category's uncached dates is de-duplicated, so concurrent requests for the
same location and dates cause a single vendor call. A category whose fetch
fails is logged and left out of the result; the other categories are still
returned.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Sequence
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from wayfarer.models import Location, WeatherCondition, WeatherConditionType
from wayfarer.resilience.clock import Clock
from wayfarer.resilience.errors import ErrorKind, UpstreamError
from wayfarer.services.cache import CacheType, TypedCache
from wayfarer.services.cache.keys import forecast_key, round_coord, weather_key, weather_range_key
from wayfarer.services.http import VendorHttpClient

logger = logging.getLogger(__name__)

VENDOR = "open-meteo"

FORECAST_API_URL = "https://api.open-meteo.com/v1/forecast"
ARCHIVE_API_URL = "https://archive-api.open-meteo.com/v1/archive"

FORECAST_MAX_DAYS = 16
PREDICTION_YEARS = 3

FORECAST_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "weathercode",
    "precipitation_probability_max",
    "windspeed_10m_max",
    "relative_humidity_2m_max",
    "uv_index_max",
    "sunrise",
    "sunset",
)
ARCHIVE_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "weathercode",
    "precipitation_sum",
    "windspeed_10m_max",
    "relative_humidity_2m_mean",
)

_TIME_PATTERN = re.compile(r"T(\d{2}:\d{2})")


class DateCategory(str, Enum):
    PAST = "past"
    FORECAST = "forecast"
    FUTURE = "future"


# Cache type and key kind per date category
CATEGORY_CACHE: dict[DateCategory, tuple[CacheType, str]] = {
    DateCategory.PAST: (CacheType.WEATHER_HISTORICAL, "historical"),
    DateCategory.FORECAST: (CacheType.WEATHER_FORECAST, "forecast"),
    DateCategory.FUTURE: (CacheType.WEATHER_PREDICTION, "prediction"),
}


# ─── Normalization ───


def map_wmo_code(code: Optional[float]) -> WeatherConditionType:
    """Map a WMO weather interpretation code to a condition bucket.

    Unknown or missing codes map to overcast.
    """
    if code is None:
        return WeatherConditionType.OVERCAST
    code = int(code)
    if code == 0:
        return WeatherConditionType.CLEAR
    if code == 1:
        return WeatherConditionType.MOSTLY_CLEAR
    if code == 2:
        return WeatherConditionType.PARTLY_CLOUDY
    if code == 3:
        return WeatherConditionType.OVERCAST
    if 45 <= code <= 48:
        return WeatherConditionType.FOG
    if 51 <= code <= 57:
        return WeatherConditionType.DRIZZLE
    if 61 <= code <= 67 or 80 <= code <= 82:
        return WeatherConditionType.RAIN
    if 71 <= code <= 77 or 85 <= code <= 86:
        return WeatherConditionType.SNOW
    if 95 <= code <= 99:
        return WeatherConditionType.STORM
    return WeatherConditionType.OVERCAST


def classify_date(day: date, today: date) -> DateCategory:
    diff = (day - today).days
    if diff < 0:
        return DateCategory.PAST
    if diff < FORECAST_MAX_DAYS:
        return DateCategory.FORECAST
    return DateCategory.FUTURE


def precipitation_percent(millimeters: Optional[float]) -> float:
    """Turn an observed daily precipitation sum into a rough likelihood."""
    if not millimeters or millimeters <= 0:
        return 0
    if millimeters < 1:
        return 10
    if millimeters < 5:
        return 30
    if millimeters < 10:
        return 50
    if millimeters < 20:
        return 70
    return 90


def _clock_time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    match = _TIME_PATTERN.search(value)
    return match.group(1) if match else None


def _rounded(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value)


def _daily(payload: Any) -> dict[str, list]:
    daily = payload.get("daily") if isinstance(payload, dict) else None
    if not isinstance(daily, dict) or not isinstance(daily.get("time"), list):
        raise UpstreamError(
            ErrorKind.INVALID_RESPONSE, "Open-Meteo response has no daily series", vendor=VENDOR
        )
    return daily


def _at(daily: dict[str, list], name: str, index: int) -> Any:
    series = daily.get(name)
    if not isinstance(series, list) or index >= len(series):
        return None
    return series[index]


def normalize_forecast(payload: Any, location: Location) -> list[WeatherCondition]:
    """Convert an Open-Meteo forecast response into daily conditions.

    Days without a temperature or weather code are skipped.
    """
    daily = _daily(payload)
    conditions: list[WeatherCondition] = []

    for i, day in enumerate(daily["time"]):
        temp_high = _at(daily, "temperature_2m_max", i)
        code = _at(daily, "weathercode", i)
        if temp_high is None or code is None:
            continue
        temp_low = _at(daily, "temperature_2m_min", i)
        humidity = _at(daily, "relative_humidity_2m_max", i)

        conditions.append(
            WeatherCondition(
                date=day,
                location=location,
                temp_high=round(temp_high),
                temp_low=round(temp_low if temp_low is not None else temp_high),
                condition=map_wmo_code(code),
                precipitation=_at(daily, "precipitation_probability_max", i) or 0,
                humidity=humidity if humidity is not None else 50,
                wind_speed=round(_at(daily, "windspeed_10m_max", i) or 0),
                uv_index=round(_at(daily, "uv_index_max", i) or 0),
                sunrise=_clock_time(_at(daily, "sunrise", i)),
                sunset=_clock_time(_at(daily, "sunset", i)),
            )
        )

    return conditions


def normalize_archive(payload: Any, location: Location) -> list[WeatherCondition]:
    """Convert an Open-Meteo archive response into observed daily conditions."""
    daily = _daily(payload)
    conditions: list[WeatherCondition] = []

    for i, day in enumerate(daily["time"]):
        temp_high = _at(daily, "temperature_2m_max", i)
        if temp_high is None:
            continue
        temp_low = _at(daily, "temperature_2m_min", i)

        conditions.append(
            WeatherCondition(
                date=day,
                location=location,
                temp_high=round(temp_high),
                temp_low=round(temp_low if temp_low is not None else temp_high),
                condition=map_wmo_code(_at(daily, "weathercode", i)),
                precipitation=precipitation_percent(_at(daily, "precipitation_sum", i)),
                humidity=_rounded(_at(daily, "relative_humidity_2m_mean", i)),
                wind_speed=_rounded(_at(daily, "windspeed_10m_max", i)),
                is_historical=True,
            )
        )

    return conditions


def average_conditions(
    day: str, location: Location, samples: Sequence[WeatherCondition]
) -> WeatherCondition:
    """Build an estimate for ``day`` from the same date in earlier years.

    With no samples a mild generic estimate is returned.
    """
    if not samples:
        return WeatherCondition(
            date=day,
            location=location,
            temp_high=20,
            temp_low=10,
            condition=WeatherConditionType.PARTLY_CLOUDY,
            precipitation=20,
            humidity=60,
            wind_speed=10,
            is_estimate=True,
        )

    def mean(values: list[float]) -> float:
        return round(sum(values) / len(values))

    # Counter keeps first-seen order for ties
    most_common = Counter(sample.condition for sample in samples).most_common(1)[0][0]

    return WeatherCondition(
        date=day,
        location=location,
        temp_high=mean([s.temp_high for s in samples]),
        temp_low=mean([s.temp_low for s in samples]),
        condition=most_common,
        precipitation=mean([s.precipitation or 0 for s in samples]),
        humidity=mean([s.humidity or 0 for s in samples]),
        wind_speed=mean([s.wind_speed or 0 for s in samples]),
        is_estimate=True,
    )


# ─── Service ───


class WeatherService(ABC):
    """Abstract base class for weather lookups."""

    @abstractmethod
    async def get_weather(self, location: Location, dates: Sequence[str]) -> list[WeatherCondition]:
        """Return conditions for ``dates`` (YYYY-MM-DD) in request order."""
        pass

    @abstractmethod
    async def get_forecast(self, location: Location) -> list[WeatherCondition]:
        pass


class OpenMeteoWeatherService(WeatherService):
    """Open-Meteo weather adapter with per-date caching."""

    def __init__(self, http: VendorHttpClient, cache: TypedCache, clock: Clock | None = None) -> None:
        self._http = http
        self._cache = cache
        self._clock = clock or Clock()

    def _today(self) -> date:
        return datetime.fromtimestamp(self._clock.now(), tz=timezone.utc).date()

    async def get_weather(self, location: Location, dates: Sequence[str]) -> list[WeatherCondition]:
        if not dates:
            return []

        today = self._today()
        groups: dict[DateCategory, list[str]] = {category: [] for category in DateCategory}
        for raw in dict.fromkeys(dates):
            try:
                day = date.fromisoformat(raw)
            except ValueError:
                logger.warning(f"[WEATHER] Skipping invalid date {raw!r}")
                continue
            groups[classify_date(day, today)].append(raw)

        lat = location.geo.latitude
        lon = location.geo.longitude
        results: dict[str, WeatherCondition] = {}

        for category, category_dates in groups.items():
            if not category_dates:
                continue
            cache_type, kind = CATEGORY_CACHE[category]

            keys = {day: weather_key(lat, lon, day, kind) for day in category_dates}
            cached = self._cache.get_many(keys.values())
            uncached = []
            for day, key in keys.items():
                if key in cached:
                    results[day] = cached[key]
                else:
                    uncached.append(day)

            if not uncached:
                continue

            uncached.sort()
            logger.info(
                f"[WEATHER] Fetching {len(uncached)} {category.value} date(s) "
                f"for ({round_coord(lat)}, {round_coord(lon)})"
            )
            try:
                fetched = await self._cache.dedupe_request(
                    weather_range_key(lat, lon, uncached, kind),
                    lambda category=category, uncached=uncached: self._fetch_category(
                        category, location, uncached
                    ),
                    cache_type,
                )
            except UpstreamError as e:
                logger.warning(f"[WEATHER] {category.value} fetch failed ({e.kind.value}): {e.message}")
                continue

            for condition in fetched:
                if condition.date in keys:
                    results[condition.date] = condition

        return [
            results[day].model_copy(update={"location": location})
            for day in dates
            if day in results
        ]

    async def get_forecast(self, location: Location) -> list[WeatherCondition]:
        """Return the full 16-day forecast, caching each day individually."""
        lat = location.geo.latitude
        lon = location.geo.longitude

        forecast = await self._cache.dedupe_request(
            forecast_key(lat, lon),
            lambda: self._fetch_category(DateCategory.FORECAST, location, []),
            CacheType.WEATHER_FORECAST,
        )
        return [condition.model_copy(update={"location": location}) for condition in forecast]

    async def _fetch_category(
        self, category: DateCategory, location: Location, dates: list[str]
    ) -> list[WeatherCondition]:
        if category is DateCategory.FORECAST:
            fetched = await self._fetch_forecast(location)
        elif category is DateCategory.PAST:
            fetched = await self._fetch_archive(location, dates[0], dates[-1])
        else:
            fetched = await self._predict(location, dates)

        cache_type, kind = CATEGORY_CACHE[category]
        lat = location.geo.latitude
        lon = location.geo.longitude
        self._cache.set_many(
            ((weather_key(lat, lon, condition.date, kind), condition) for condition in fetched),
            cache_type,
        )
        return fetched

    def _coords(self, location: Location) -> dict[str, str]:
        return {
            "latitude": round_coord(location.geo.latitude),
            "longitude": round_coord(location.geo.longitude),
        }

    async def _fetch_forecast(self, location: Location) -> list[WeatherCondition]:
        payload = await self._http.get_json(
            FORECAST_API_URL,
            params={
                **self._coords(location),
                "daily": ",".join(FORECAST_FIELDS),
                "timezone": "auto",
                "forecast_days": FORECAST_MAX_DAYS,
            },
            vendor=VENDOR,
        )
        return normalize_forecast(payload, location)

    async def _fetch_archive(
        self, location: Location, start_date: str, end_date: str
    ) -> list[WeatherCondition]:
        payload = await self._http.get_json(
            ARCHIVE_API_URL,
            params={
                **self._coords(location),
                "start_date": start_date,
                "end_date": end_date,
                "daily": ",".join(ARCHIVE_FIELDS),
                "timezone": "auto",
            },
            vendor=VENDOR,
        )
        return normalize_archive(payload, location)

    async def _predict(self, location: Location, dates: list[str]) -> list[WeatherCondition]:
        current_year = self._today().year
        predictions = []

        for day in dates:
            target = date.fromisoformat(day)
            past_days = []
            for offset in range(1, PREDICTION_YEARS + 1):
                try:
                    past_days.append(target.replace(year=current_year - offset).isoformat())
                except ValueError:
                    # Feb 29 has no counterpart in common years
                    continue

            outcomes = await asyncio.gather(
                *(self._fetch_archive(location, past, past) for past in past_days),
                return_exceptions=True,
            )

            samples: list[WeatherCondition] = []
            for past, outcome in zip(past_days, outcomes):
                if isinstance(outcome, UpstreamError):
                    logger.debug(f"[WEATHER] No archive data for {past}: {outcome.message}")
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                samples.extend(outcome[:1])

            predictions.append(average_conditions(day, location, samples))

        return predictions
