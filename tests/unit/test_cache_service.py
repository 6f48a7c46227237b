"""Unit tests for the typed cache and request de-duplication."""

import asyncio

import pytest

from wayfarer.resilience import ErrorKind, UpstreamError
from wayfarer.services.cache import CACHE_TTL, CacheType, TypedCache
from wayfarer.services.cache.keys import weather_key

SF = weather_key(37.7749, -122.4194, "2025-06-20", "forecast")


class CountingProducer:
    """Producer that blocks on a gate so concurrent callers overlap."""

    def __init__(self, value: object = "fresh", error: BaseException | None = None) -> None:
        self.value = value
        self.error = error
        self.calls = 0
        self.gate = asyncio.Event()

    async def __call__(self) -> object:
        self.calls += 1
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.value


class TestTtl:
    def test_every_cache_type_has_a_ttl(self) -> None:
        assert set(CACHE_TTL) == set(CacheType)

    def test_ttl_ordering(self) -> None:
        assert CACHE_TTL[CacheType.WEATHER_FORECAST] < CACHE_TTL[CacheType.WEATHER_PREDICTION]
        assert CACHE_TTL[CacheType.WEATHER_PREDICTION] < CACHE_TTL[CacheType.WEATHER_HISTORICAL]

    def test_overrides_merge_over_defaults(self, clock) -> None:
        cache = TypedCache(clock=clock, ttl={CacheType.ROUTING: 5})
        assert cache.ttl_for(CacheType.ROUTING) == 5
        assert cache.ttl_for(CacheType.GEOCODING) == CACHE_TTL[CacheType.GEOCODING]


class TestGetSet:
    def test_round_trip(self, cache: TypedCache) -> None:
        cache.set(SF, {"high": 22}, CacheType.WEATHER_FORECAST)
        assert cache.get(SF) == {"high": 22}
        assert cache.has(SF)

    def test_missing_key_is_none(self, cache: TypedCache) -> None:
        assert cache.get("nope") is None
        assert not cache.has("nope")

    def test_entry_expires_after_ttl(self, cache: TypedCache, clock) -> None:
        cache.set(SF, "sunny", CacheType.WEATHER_FORECAST)
        clock.advance(CACHE_TTL[CacheType.WEATHER_FORECAST] - 1)
        assert cache.get(SF) == "sunny"
        clock.advance(1)
        assert cache.get(SF) is None

    def test_historical_outlives_forecast(self, cache: TypedCache, clock) -> None:
        cache.set("forecast", 1, CacheType.WEATHER_FORECAST)
        cache.set("historical", 2, CacheType.WEATHER_HISTORICAL)
        clock.advance(2 * 60 * 60)
        assert cache.get("forecast") is None
        assert cache.get("historical") == 2

    def test_set_replaces_and_refreshes_expiry(self, cache: TypedCache, clock) -> None:
        cache.set(SF, "old", CacheType.WEATHER_FORECAST)
        clock.advance(30 * 60)
        cache.set(SF, "new", CacheType.WEATHER_FORECAST)
        clock.advance(45 * 60)
        assert cache.get(SF) == "new"

    def test_none_is_not_stored(self, cache: TypedCache) -> None:
        cache.set(SF, None, CacheType.WEATHER_FORECAST)
        assert cache.stats().total == 0

    def test_falsy_values_are_cached(self, cache: TypedCache) -> None:
        cache.set("empty", [], CacheType.CITY_SEARCH)
        assert cache.get("empty") == []
        assert cache.has("empty")

    def test_delete_and_clear(self, cache: TypedCache) -> None:
        cache.set("a", 1, CacheType.GEOCODING)
        cache.set("b", 2, CacheType.GEOCODING)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert cache.get("b") is None


class TestBatch:
    def test_get_many_omits_missing_keys(self, cache: TypedCache) -> None:
        cache.set("a", 1, CacheType.ROUTING)
        cache.set("b", 2, CacheType.ROUTING)
        assert cache.get_many(["a", "b", "c"]) == {"a": 1, "b": 2}

    def test_set_many_shares_expiry(self, cache: TypedCache, clock) -> None:
        cache.set_many([("a", 1), ("b", 2), ("c", None)], CacheType.WEATHER_FORECAST)
        assert cache.get_many(["a", "b", "c"]) == {"a": 1, "b": 2}
        clock.advance(CACHE_TTL[CacheType.WEATHER_FORECAST])
        assert cache.get_many(["a", "b"]) == {}


class TestMaintenance:
    def test_stats_counts_live_entries_by_type(self, cache: TypedCache, clock) -> None:
        cache.set("f1", 1, CacheType.WEATHER_FORECAST)
        cache.set("f2", 2, CacheType.WEATHER_FORECAST)
        cache.set("g", 3, CacheType.GEOCODING)
        stats = cache.stats()
        assert stats.total == 3
        assert stats.by_type == {"WEATHER_FORECAST": 2, "GEOCODING": 1}

        clock.advance(CACHE_TTL[CacheType.WEATHER_FORECAST])
        assert cache.stats().by_type == {"GEOCODING": 1}

    def test_clear_by_type(self, cache: TypedCache) -> None:
        cache.set("f", 1, CacheType.WEATHER_FORECAST)
        cache.set("g", 2, CacheType.GEOCODING)
        assert cache.clear_by_type(CacheType.WEATHER_FORECAST) == 1
        assert cache.get("f") is None
        assert cache.get("g") == 2

    def test_cleanup_expired(self, cache: TypedCache, clock) -> None:
        cache.set("f", 1, CacheType.WEATHER_FORECAST)
        cache.set("t", 2, CacheType.TIMEZONE)
        clock.advance(CACHE_TTL[CacheType.WEATHER_FORECAST])
        assert cache.cleanup_expired() == 1
        assert cache.cleanup_expired() == 0
        assert cache.get("t") == 2

    def test_lru_bound_evicts_least_recently_used(self, clock) -> None:
        cache = TypedCache(clock=clock, max_entries=2)
        cache.set("a", 1, CacheType.GEOCODING)
        cache.set("b", 2, CacheType.GEOCODING)
        assert cache.get("a") == 1
        cache.set("c", 3, CacheType.GEOCODING)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3


class TestBestEffort:
    def test_read_failure_is_a_miss(self, cache: TypedCache, monkeypatch) -> None:
        cache.set("a", 1, CacheType.GEOCODING)

        def broken(key, now):
            raise RuntimeError("corrupt")

        monkeypatch.setattr(cache, "_read", broken)
        assert cache.get("a") is None
        assert cache.get_many(["a"]) == {}

    def test_write_failure_is_swallowed(self, cache: TypedCache, monkeypatch) -> None:
        def broken(*args):
            raise RuntimeError("full")

        monkeypatch.setattr(cache, "_write", broken)
        cache.set("a", 1, CacheType.GEOCODING)
        cache.set_many([("b", 2)], CacheType.GEOCODING)
        assert cache.get("a") is None

    @pytest.mark.asyncio
    async def test_write_failure_still_returns_produced_value(self, cache: TypedCache, monkeypatch) -> None:
        def broken(*args):
            raise RuntimeError("full")

        monkeypatch.setattr(cache, "_write", broken)

        async def produce() -> str:
            return "fresh"

        assert await cache.dedupe_request("a", produce, CacheType.GEOCODING) == "fresh"


class TestDedupeRequest:
    @pytest.mark.asyncio
    async def test_cached_value_skips_producer(self, cache: TypedCache) -> None:
        cache.set(SF, "cached", CacheType.WEATHER_FORECAST)
        producer = CountingProducer()
        assert await cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST) == "cached"
        assert producer.calls == 0

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self, cache: TypedCache) -> None:
        producer = CountingProducer(value={"high": 22})
        waiters = [
            asyncio.ensure_future(cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST))
            for _ in range(5)
        ]
        await asyncio.sleep(0)
        assert cache.stats().in_flight == 1

        producer.gate.set()
        results = await asyncio.gather(*waiters)

        assert producer.calls == 1
        assert results == [{"high": 22}] * 5
        assert cache.get(SF) == {"high": 22}
        assert cache.stats().in_flight == 0

    @pytest.mark.asyncio
    async def test_failure_is_shared_and_not_remembered(self, cache: TypedCache) -> None:
        error = UpstreamError(ErrorKind.SERVER_ERROR, "boom")
        producer = CountingProducer(error=error)
        waiters = [
            asyncio.ensure_future(cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        producer.gate.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert producer.calls == 1
        assert all(result is error for result in results)
        assert cache.get(SF) is None
        assert cache.stats().in_flight == 0

        retry = CountingProducer(value="recovered")
        retry.gate.set()
        assert await cache.dedupe_request(SF, retry, CacheType.WEATHER_FORECAST) == "recovered"
        assert retry.calls == 1

    @pytest.mark.asyncio
    async def test_none_result_is_returned_but_not_cached(self, cache: TypedCache) -> None:
        producer = CountingProducer(value=None)
        producer.gate.set()
        assert await cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST) is None
        assert await cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST) is None
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_share(self, cache: TypedCache) -> None:
        first = CountingProducer(value=1)
        second = CountingProducer(value=2)
        first.gate.set()
        second.gate.set()
        results = await asyncio.gather(
            cache.dedupe_request("a", first, CacheType.ROUTING),
            cache.dedupe_request("b", second, CacheType.ROUTING),
        )
        assert results == [1, 2]
        assert first.calls == second.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_fetch(self, cache: TypedCache) -> None:
        producer = CountingProducer(value="shared")
        impatient = asyncio.ensure_future(cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST))
        patient = asyncio.ensure_future(cache.dedupe_request(SF, producer, CacheType.WEATHER_FORECAST))
        await asyncio.sleep(0)

        impatient.cancel()
        with pytest.raises(asyncio.CancelledError):
            await impatient

        producer.gate.set()
        assert await patient == "shared"
        assert producer.calls == 1
        assert cache.get(SF) == "shared"
