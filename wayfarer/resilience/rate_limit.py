"""Fixed-window rate limiter keyed by client and route category.

Each ``(client_id, category)`` pair owns an independent counter, so a client
that exhausts its "places" budget can still call "weather". Windows reset
entirely once their length has elapsed. A client can therefore make up to
twice the limit across a window boundary; that burst is accepted.

Counters live in process memory. Several worker processes each enforce
their own limits; nothing is shared between them.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass

from wayfarer.resilience.clock import Clock

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "default"


@dataclass
class RateLimitWindow:
    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitInfo:
    """Snapshot of a client's budget for one category."""

    limit: int
    remaining: int
    reset_at: float  # epoch seconds


class RateLimiter:
    """In-memory fixed-window request counter.

    Args:
        window_seconds: Window length.
        default_limit: Budget for categories without a specific limit.
        limits: Per-category budgets.
        clock: Time source.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        default_limit: int = 100,
        limits: Mapping[str, int] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._window = window_seconds
        self._default_limit = default_limit
        self._limits = dict(limits or {})
        self._clock = clock or Clock()
        self._windows: dict[tuple[str, str], RateLimitWindow] = {}

    @property
    def window_seconds(self) -> float:
        return self._window

    def limit_for(self, category: str) -> int:
        return self._limits.get(category, self._default_limit)

    def _active_window(self, key: tuple[str, str], now: float) -> RateLimitWindow | None:
        window = self._windows.get(key)
        if window is None or now - window.window_start >= self._window:
            return None
        return window

    def check(self, client_id: str, category: str = DEFAULT_CATEGORY) -> bool:
        """Record a request and report whether it is allowed.

        Denied requests leave the counter untouched.
        """
        key = (client_id, category)
        now = self._clock.now()
        limit = self.limit_for(category)

        window = self._active_window(key, now)
        if window is None:
            window = RateLimitWindow(count=0, window_start=now)
            self._windows[key] = window

        if window.count >= limit:
            logger.info(f"[RATE] Denied {client_id} for '{category}' ({window.count}/{limit})")
            return False

        window.count += 1
        return True

    def get_info(self, client_id: str, category: str = DEFAULT_CATEGORY) -> RateLimitInfo:
        now = self._clock.now()
        limit = self.limit_for(category)
        window = self._active_window((client_id, category), now)

        if window is None:
            return RateLimitInfo(limit=limit, remaining=limit, reset_at=now + self._window)

        return RateLimitInfo(
            limit=limit,
            remaining=max(0, limit - window.count),
            reset_at=window.window_start + self._window,
        )

    def get_headers(self, client_id: str, category: str = DEFAULT_CATEGORY) -> dict[str, str]:
        """Standard rate-limit response headers for a client."""
        info = self.get_info(client_id, category)
        return {
            "X-RateLimit-Limit": str(info.limit),
            "X-RateLimit-Remaining": str(info.remaining),
            "X-RateLimit-Reset": str(math.ceil(info.reset_at)),
        }

    def cleanup(self) -> int:
        """Drop windows idle for more than two window lengths."""
        now = self._clock.now()
        stale = [
            key
            for key, window in self._windows.items()
            if now - window.window_start > self._window * 2
        ]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def reset(self, client_id: str, category: str | None = None) -> None:
        """Forget a client's counters, for one category or all of them."""
        if category is not None:
            self._windows.pop((client_id, category), None)
            return
        for key in [key for key in self._windows if key[0] == client_id]:
            del self._windows[key]


def get_client_ip(
    headers: Mapping[str, str],
    peer: str | None,
    trust_proxy: bool = True,
) -> str:
    """Identify the client for rate limiting.

    Prefers the first address in ``X-Forwarded-For``, then ``X-Real-IP``,
    then the transport peer address. Forwarded headers are set by the client
    unless a trusted proxy rewrites them, so they can be spoofed; pass
    ``trust_proxy=False`` when the service is not behind such a proxy.
    """
    if trust_proxy:
        forwarded_for = headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first

        real_ip = headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    return peer or "unknown"
