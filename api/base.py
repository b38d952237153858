"""Error response format and error codes shared by all routes."""

from typing import Any

from pydantic import BaseModel, Field


class APIError(BaseModel):
    """
    Error body returned by every failing endpoint.

    `error` is the human-readable message clients display; `code` is
    machine-readable; `details` carries diagnostic context when useful.
    """

    error: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
    details: Any | None = None


def error_response(code: str, message: str, details: Any | None = None) -> dict:
    """Create an error body, omitting details when there are none."""
    return APIError(error=message, code=code, details=details).model_dump(
        mode="json", exclude_none=True
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Authentication
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"

    # One-time codes
    INVALID_CODE = "INVALID_CODE"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    CODE_EXPIRED = "CODE_EXPIRED"
    CODE_MISMATCH = "CODE_MISMATCH"
    DELIVERY_FAILED = "DELIVERY_FAILED"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    PROXY_ERROR = "PROXY_ERROR"
