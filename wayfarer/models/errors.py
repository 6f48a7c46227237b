"""API error envelope models.

Every failed request is answered with::

    {"success": false, "error": {"code": ..., "message": ..., "user_message": ...}}
"""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Error codes surfaced to API clients."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_RATE_LIMITED = "UPSTREAM_RATE_LIMITED"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    SERVICE_ERROR = "SERVICE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    API_ERROR = "API_ERROR"


class AppError(BaseModel):
    """Error details returned in the response body."""

    code: ErrorCode
    message: str = Field(..., description="Developer-facing description")
    user_message: str = Field(..., description="Safe to show to end users")
