"""Shared test fixtures: a controllable clock and vendor HTTP stubs."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import httpx
import pytest

from wayfarer.resilience.clock import Clock
from wayfarer.resilience.retry import RetryConfig
from wayfarer.services.cache import TypedCache
from wayfarer.services.http import VendorHttpClient

# 2025-06-15 12:00 UTC
START = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc).timestamp()


class FakeClock(Clock):
    """Clock that only moves when told to; sleeps advance it instantly."""

    def __init__(self, start: float = START) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds
        await asyncio.sleep(0)


def make_http(
    handler: Callable[[httpx.Request], httpx.Response],
    clock: Clock,
    max_attempts: int = 4,
) -> VendorHttpClient:
    """Vendor client backed by ``httpx.MockTransport`` with jitter disabled."""
    return VendorHttpClient(
        timeout=5.0,
        clock=clock,
        transport=httpx.MockTransport(handler),
        retry_config=RetryConfig(max_attempts=max_attempts, jitter=0),
    )


class Recorder:
    """MockTransport handler that replays canned responses and records requests.

    ``routes`` maps a URL path prefix to a response or a callable returning one.
    """

    def __init__(self, routes: dict) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Longest prefix wins
        for prefix in sorted(self.routes, key=len, reverse=True):
            if request.url.path.startswith(prefix):
                route = self.routes[prefix]
                return route(request) if callable(route) else route
        return httpx.Response(404, json={"message": "no stub"})

    def calls(self, prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(prefix)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TypedCache:
    return TypedCache(clock=clock)
