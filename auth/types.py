"""Pydantic models for auth domain."""

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from auth.exceptions import InvalidEmailError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
OTP_PATTERN = re.compile(r"^[0-9]{6}$")


def normalize_email(email: str) -> str:
    """
    Trim and lower-case an email, rejecting anything without a local@domain.tld shape.

    Raises:
        InvalidEmailError: If the email is not a string or is malformed.
    """
    if not isinstance(email, str) or not email.strip():
        raise InvalidEmailError("Email is required")
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise InvalidEmailError("Invalid email format")
    return normalized


class PendingOtp(BaseModel):
    """A one-time code awaiting verification."""

    email: str
    code: str = Field(..., min_length=6, max_length=6)
    expires_at: datetime
    attempts: int = 0


class Session(BaseModel):
    """
    Identity asserted by the session cookie.

    Never mutated; a new login replaces the cookie wholesale.
    """

    email: str
    user_id: str
    created_at: datetime


class UserSource(Enum):
    """Where a resolved identity came from."""

    DIRECTORY = "directory"
    FALLBACK = "fallback"


class ResolvedUser(BaseModel):
    """Stable identity for an email, from the directory or the local hash fallback."""

    id: str
    email: str
    source: UserSource

    @property
    def degraded(self) -> bool:
        """True when the directory was unreachable and the hash fallback was used."""
        return self.source is UserSource.FALLBACK


class RequestCodeRequest(BaseModel):
    """Request payload for a verification code."""

    email: str

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value)


class VerifyCodeRequest(BaseModel):
    """
    Request payload for code verification.

    otp is optional at the schema level because bypass mode ignores it;
    the service enforces the six-digit format otherwise.
    """

    email: str
    otp: str | None = None

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value)
