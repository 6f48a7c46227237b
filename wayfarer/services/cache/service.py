"""Typed in-memory cache with in-flight request de-duplication.

Entries expire after a time-to-live chosen by their ``CacheType``: forecasts
go stale within hours, while historical weather never changes. Expired
entries are treated as absent and dropped lazily when read;
``cleanup_expired`` is an optional sweep and correctness does not depend on
it.

``dedupe_request`` is what adapters call: it returns a cached value when one
exists and otherwise collapses concurrent requests for the same key into a
single producer call whose result (or exception) every caller shares.

The cache is best-effort. A failure while reading is treated as a miss and a
failure while writing is logged, so cache trouble never blocks a fetch.

The store is process-local: separate worker processes keep separate caches.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from wayfarer.resilience.clock import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")

HOUR = 60 * 60
DAY = 24 * HOUR


class CacheType(str, Enum):
    """Policy buckets that determine an entry's time-to-live."""

    WEATHER_FORECAST = "WEATHER_FORECAST"
    WEATHER_HISTORICAL = "WEATHER_HISTORICAL"
    WEATHER_PREDICTION = "WEATHER_PREDICTION"
    GEOCODING = "GEOCODING"
    CITY_SEARCH = "CITY_SEARCH"
    ROUTING = "ROUTING"
    TIMEZONE = "TIMEZONE"
    FLIGHT_ROUTE = "FLIGHT_ROUTE"
    AIRLINE_SEARCH = "AIRLINE_SEARCH"
    PLACES_FOOD = "PLACES_FOOD"
    PLACES_ATTRACTIONS = "PLACES_ATTRACTIONS"
    PLACES_LODGING = "PLACES_LODGING"
    PLACE_DETAILS = "PLACE_DETAILS"


# TTL in seconds per cache type
CACHE_TTL: dict[CacheType, float] = {
    CacheType.WEATHER_FORECAST: 1 * HOUR,
    CacheType.WEATHER_PREDICTION: 6 * HOUR,
    CacheType.PLACES_FOOD: 1 * DAY,
    CacheType.PLACES_ATTRACTIONS: 1 * DAY,
    CacheType.PLACES_LODGING: 1 * DAY,
    CacheType.CITY_SEARCH: 7 * DAY,
    CacheType.ROUTING: 7 * DAY,
    CacheType.FLIGHT_ROUTE: 7 * DAY,
    CacheType.PLACE_DETAILS: 7 * DAY,
    CacheType.GEOCODING: 30 * DAY,
    CacheType.AIRLINE_SEARCH: 30 * DAY,
    CacheType.WEATHER_HISTORICAL: 365 * DAY,
    CacheType.TIMEZONE: 365 * DAY,
}


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    value: T
    cache_type: CacheType
    expires_at: float
    created_at: float


@dataclass
class CacheStats:
    total: int
    by_type: dict[str, int] = field(default_factory=dict)
    in_flight: int = 0


class TypedCache:
    """Process-local key/value cache with per-type TTL.

    Stored values are shared between callers and must not be mutated; copy a
    value (e.g. ``model_copy(update=...)``) to derive a variant.

    Args:
        clock: Time source for expiry.
        max_entries: Optional bound; the least recently used entry is
            evicted when it is exceeded.
        ttl: Optional TTL overrides (seconds) merged over ``CACHE_TTL``.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        max_entries: int | None = None,
        ttl: Mapping[CacheType, float] | None = None,
    ) -> None:
        self._clock = clock or Clock()
        self._max_entries = max_entries
        self._ttl = {**CACHE_TTL, **(ttl or {})}
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    def ttl_for(self, cache_type: CacheType) -> float:
        return self._ttl[cache_type]

    # ── Reads ─────────────────────────────────────────────────────────

    def _read(self, key: str, now: float) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``, or None if absent or expired."""
        try:
            return self._read(key, self._clock.now())
        except Exception:
            logger.warning(f"[CACHE] Read failed for {key}, treating as miss", exc_info=True)
            return None

    def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return found, unexpired entries; missing keys are omitted."""
        now = self._clock.now()
        found: dict[str, Any] = {}
        for key in keys:
            try:
                value = self._read(key, now)
            except Exception:
                logger.warning(f"[CACHE] Read failed for {key}, treating as miss", exc_info=True)
                continue
            if value is not None:
                found[key] = value
        return found

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    # ── Writes ────────────────────────────────────────────────────────

    def _write(self, key: str, value: Any, cache_type: CacheType, now: float) -> None:
        entry = CacheEntry(
            key=key,
            value=value,
            cache_type=cache_type,
            expires_at=now + self._ttl[cache_type],
            created_at=now,
        )
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"[CACHE] Evicted {evicted} (max_entries={self._max_entries})")

    def set(self, key: str, value: Any, cache_type: CacheType) -> None:
        """Store ``value`` under ``key``, replacing any existing entry.

        None cannot be stored since ``get`` uses it to signal absence.
        """
        if value is None:
            return
        try:
            self._write(key, value, cache_type, self._clock.now())
        except Exception:
            logger.warning(f"[CACHE] Write failed for {key}, continuing uncached", exc_info=True)

    def set_many(self, entries: Iterable[tuple[str, Any]], cache_type: CacheType) -> None:
        """Store several values sharing one cache type and expiry."""
        now = self._clock.now()
        for key, value in entries:
            if value is None:
                continue
            try:
                self._write(key, value, cache_type, now)
            except Exception:
                logger.warning(f"[CACHE] Write failed for {key}, continuing uncached", exc_info=True)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all entries. In-flight requests are left running."""
        self._entries.clear()

    def clear_by_type(self, cache_type: CacheType) -> int:
        doomed = [key for key, entry in self._entries.items() if entry.cache_type == cache_type]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def cleanup_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock.now()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"[CACHE] Cleaned up {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock.now()
        by_type: dict[str, int] = {}
        total = 0
        for entry in self._entries.values():
            if now >= entry.expires_at:
                continue
            total += 1
            by_type[entry.cache_type.value] = by_type.get(entry.cache_type.value, 0) + 1
        return CacheStats(total=total, by_type=by_type, in_flight=len(self._in_flight))

    # ── De-duplication ────────────────────────────────────────────────

    async def dedupe_request(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        cache_type: CacheType,
    ) -> T:
        """Return the cached value for ``key`` or produce it exactly once.

        Concurrent callers for the same key share one ``producer()`` call and
        receive its result or its exception. The ledger slot is released as
        soon as the producer settles, so a failure is not remembered. A
        caller that is cancelled while waiting does not cancel the shared
        fetch.

        Args:
            key: Cache key, built by the adapter.
            producer: Zero-argument coroutine function doing the fetch.
            cache_type: TTL bucket for the produced value.

        Returns:
            The cached or freshly produced value.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._produce(key, producer, cache_type))
            task.add_done_callback(_mark_exception_retrieved)
            self._in_flight[key] = task
        else:
            logger.debug(f"[CACHE] Joining in-flight request for {key}")

        return await asyncio.shield(task)

    async def _produce(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        cache_type: CacheType,
    ) -> T:
        try:
            value = await producer()
            self.set(key, value, cache_type)
            return value
        finally:
            self._in_flight.pop(key, None)


def _mark_exception_retrieved(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; keep asyncio from warning about
    # an exception nobody retrieved.
    if not task.cancelled():
        task.exception()
