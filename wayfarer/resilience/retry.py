"""Retry-with-backoff for vendor calls.

Transient failures (rate limiting, 5xx, network trouble) are retried with a
capped exponential delay. Everything else fails on the first attempt.
``classify_error`` is the single place where transport-level failures are
turned into an ``ErrorKind``.
"""

import asyncio
import json
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import TypeVar

import httpx
from pydantic import ValidationError

from wayfarer.resilience.errors import ErrorKind, RetryExhaustedError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryHook = Callable[[int, float, UpstreamError], None]


@dataclass
class RetryConfig:
    """Backoff settings. Delays are in seconds."""

    max_attempts: int = 4
    initial_delay: float = 1.0
    max_delay: float = 8.0
    backoff_multiplier: float = 2.0
    # Fraction of the computed delay that may be shaved off at random
    jitter: float = 0.1
    on_retry: RetryHook | None = None


def parse_retry_after(value: str | None, now: float | None = None) -> float | None:
    """Parse a ``Retry-After`` header into seconds.

    Accepts delta-seconds (``"120"``) or an HTTP-date, measured from ``now``
    (epoch seconds, defaulting to the wall clock). Returns None for missing,
    malformed, non-finite or already-elapsed values.
    """
    if not value:
        return None
    value = value.strip()

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return seconds if math.isfinite(seconds) and seconds > 0 else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None

    reference = time.time() if now is None else now
    delay = when.timestamp() - reference
    return delay if delay > 0 else None


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP error status to an error kind."""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.CLIENT_ERROR


def classify_error(
    error: BaseException, vendor: str | None = None, now: float | None = None
) -> UpstreamError | None:
    """Classify a failure raised by a vendor call.

    Returns None when the exception is not a vendor failure at all (a bug in
    our own code), so callers can let it propagate untouched.
    """
    if isinstance(error, UpstreamError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        status = response.status_code
        return UpstreamError(
            classify_status(status),
            f"HTTP {status} from {error.request.url.host}",
            status_code=status,
            retry_after=parse_retry_after(response.headers.get("Retry-After"), now=now),
            vendor=vendor,
        )

    if isinstance(error, httpx.TimeoutException):
        return UpstreamError(ErrorKind.NETWORK_ERROR, f"Request timed out: {error}", vendor=vendor)

    if isinstance(error, httpx.TransportError):
        return UpstreamError(
            ErrorKind.NETWORK_ERROR, f"Connection failed: {type(error).__name__}: {error}", vendor=vendor
        )

    if isinstance(error, (asyncio.TimeoutError, OSError)):
        return UpstreamError(ErrorKind.NETWORK_ERROR, f"Network failure: {error!r}", vendor=vendor)

    if isinstance(error, (json.JSONDecodeError, httpx.DecodingError, ValidationError)):
        return UpstreamError(
            ErrorKind.INVALID_RESPONSE, f"Malformed response: {type(error).__name__}", vendor=vendor
        )

    return None


def compute_delay(attempt: int, config: RetryConfig, retry_after: float | None = None) -> float:
    """Delay before the retry that follows failed attempt number ``attempt`` (1-based)."""
    if retry_after is not None and retry_after > 0:
        return min(retry_after, config.max_delay)

    delay = min(
        config.initial_delay * config.backoff_multiplier ** (attempt - 1),
        config.max_delay,
    )
    if config.jitter > 0:
        delay -= delay * config.jitter * random.random()
    return delay


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    now: Callable[[], float] | None = None,
    vendor: str | None = None,
) -> T:
    """Run ``operation`` until it succeeds, a fatal error occurs, or attempts run out.

    Args:
        operation: Zero-argument coroutine function performing the call.
        config: Backoff settings; defaults to ``RetryConfig()``.
        sleep: Awaitable sleep used between attempts (injectable for tests).
        now: Current epoch time, used to resolve HTTP-date ``Retry-After``
            headers; defaults to the wall clock.
        vendor: Name attached to classified errors for logging.

    Returns:
        The operation's result.

    Raises:
        UpstreamError: A fatal error, unchanged from the first failure.
        RetryExhaustedError: A retryable error persisted through
            ``max_attempts`` attempts.
    """
    config = config or RetryConfig()
    max_attempts = max(1, config.max_attempts)
    label = vendor or "vendor"

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            classified = classify_error(exc, vendor=vendor, now=now() if now else None)
            if classified is None:
                raise
            if not classified.retryable:
                if classified is exc:
                    raise
                raise classified from exc
            if attempt >= max_attempts:
                raise RetryExhaustedError(classified, attempt) from exc

            delay = compute_delay(attempt, config, classified.retry_after)
            logger.info(
                f"[RETRY] {label} attempt {attempt}/{max_attempts} failed "
                f"({classified.kind.value}), retrying in {delay:.2f}s"
            )
            if config.on_retry is not None:
                try:
                    config.on_retry(attempt, delay, classified)
                except Exception:
                    logger.exception("[RETRY] on_retry hook raised; continuing")

            await sleep(delay)
            attempt += 1
