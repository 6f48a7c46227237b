"""Application settings.

Values come from the process environment, optionally seeded from a ``.env``
file. Vendor credentials are optional: adapters that need a missing key raise
a ``MISSING_CONFIGURATION`` error at call time instead of failing startup.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
)


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_log_level(name: str, default: str) -> str:
    raw = _env_str(name)
    if raw is None:
        return default
    if raw.upper() not in LOG_LEVELS:
        logger.warning(f"[CONFIG] Ignoring unknown {name}={raw!r}, using {default}")
        return default
    return raw.upper()


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_str(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime configuration for the API and its vendor adapters."""

    geoapify_api_key: str | None = None
    foursquare_api_key: str | None = None
    timezonedb_api_key: str | None = None

    http_timeout_seconds: float = 10.0

    rate_limit_window_seconds: float = 60.0
    rate_limit_max_default: int = 100
    # Per-category budgets; categories not listed use rate_limit_max_default
    rate_limit_max: dict[str, int] = field(
        default_factory=lambda: {
            "weather": 100,
            "flights": 50,
            "routing": 200,
            "places": 100,
            "geocoding": 100,
            "cities": 100,
        }
    )
    trust_proxy: bool = True

    cache_max_entries: int | None = None
    housekeeping_interval_seconds: float = 300.0

    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and ``.env`` if present)."""
        load_dotenv()

        defaults = cls()
        rate_limit_max = {
            category: _env_int(f"RATE_LIMIT_MAX_{category.upper()}", limit)
            for category, limit in defaults.rate_limit_max.items()
        }

        cache_max_entries = _env_int("CACHE_MAX_ENTRIES", 0)
        cors_raw = _env_str("CORS_ORIGINS")
        cors_origins = (
            [origin.strip() for origin in cors_raw.split(",") if origin.strip()]
            if cors_raw
            else list(DEFAULT_CORS_ORIGINS)
        )

        return cls(
            geoapify_api_key=_env_str("GEOAPIFY_API_KEY"),
            foursquare_api_key=_env_str("FOURSQUARE_API_KEY"),
            timezonedb_api_key=_env_str("TIMEZONEDB_API_KEY"),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds),
            rate_limit_window_seconds=_env_float(
                "RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds
            ),
            rate_limit_max_default=_env_int("RATE_LIMIT_MAX_DEFAULT", defaults.rate_limit_max_default),
            rate_limit_max=rate_limit_max,
            trust_proxy=_env_bool("TRUST_PROXY", defaults.trust_proxy),
            cache_max_entries=cache_max_entries if cache_max_entries > 0 else None,
            housekeeping_interval_seconds=_env_float(
                "HOUSEKEEPING_INTERVAL_SECONDS", defaults.housekeeping_interval_seconds
            ),
            log_level=_env_log_level("LOG_LEVEL", defaults.log_level),
            cors_origins=cors_origins,
        )
