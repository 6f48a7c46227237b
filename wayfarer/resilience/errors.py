"""Closed error taxonomy for vendor calls."""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed vendor call."""

    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    CLIENT_ERROR = "CLIENT_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    MISSING_CONFIGURATION = "MISSING_CONFIGURATION"


RETRYABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR, ErrorKind.NETWORK_ERROR}
)


class UpstreamError(Exception):
    """A vendor call failed.

    Attributes:
        kind: The error classification.
        status_code: HTTP status returned by the vendor, if any.
        retry_after: Seconds the vendor asked us to wait, if it said so.
        vendor: Name of the vendor adapter, for logging.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
        vendor: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.vendor = vendor

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, message={self.message!r}, "
            f"status_code={self.status_code})"
        )


class RetryExhaustedError(UpstreamError):
    """A retryable failure persisted through every allowed attempt."""

    def __init__(self, last_error: UpstreamError, attempts: int) -> None:
        super().__init__(
            last_error.kind,
            f"Gave up after {attempts} attempts: {last_error.message}",
            status_code=last_error.status_code,
            retry_after=last_error.retry_after,
            vendor=last_error.vendor,
        )
        self.last_error = last_error
        self.attempts = attempts
