"""Request resilience primitives shared by every vendor adapter.

- Clock: injectable time source
- Retry: exponential backoff with a closed error taxonomy
- Rate limiting: fixed-window counters per client and route category

The typed cache lives in ``wayfarer.services.cache``.
"""

from .clock import Clock
from .errors import ErrorKind, RetryExhaustedError, UpstreamError
from .rate_limit import RateLimiter, RateLimitInfo, get_client_ip
from .retry import (
    RetryConfig,
    classify_error,
    classify_status,
    compute_delay,
    parse_retry_after,
    retry_with_backoff,
)

__all__ = [
    "Clock",
    "ErrorKind",
    "RateLimitInfo",
    "RateLimiter",
    "RetryConfig",
    "RetryExhaustedError",
    "UpstreamError",
    "classify_error",
    "classify_status",
    "compute_delay",
    "get_client_ip",
    "parse_retry_after",
    "retry_with_backoff",
]
