"""Security event logging for auth audit trail.

Events go to the 'security' logger as one structured line each, so
operators can route them separately from application logs. Verification
codes and session values are never part of an event.
"""

import json
import logging
from enum import Enum
from typing import Any

from utils.timezone import now_utc


class SecurityEvent(Enum):
    """Auth security event types."""

    OTP_REQUESTED = "otp_requested"
    OTP_SENT = "otp_sent"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    OTP_EXPIRED = "otp_expired"
    OTP_BYPASSED = "otp_bypassed"
    SESSION_CREATED = "session_created"
    SESSION_REVOKED = "session_revoked"
    SESSION_REJECTED = "session_rejected"
    DIRECTORY_FALLBACK = "directory_fallback"
    API_TOKEN_ISSUED = "api_token_issued"


_FAILURE_EVENTS = frozenset({
    SecurityEvent.OTP_FAILED,
    SecurityEvent.OTP_EXPIRED,
    SecurityEvent.SESSION_REJECTED,
    SecurityEvent.DIRECTORY_FALLBACK,
})


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger("security")

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event. Failures are logged at WARNING, the rest at INFO."""
        record = {
            "event_type": event.value,
            "email": email,
            "user_id": user_id,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "details": details,
            "created_at": now_utc().isoformat(),
        }
        level = logging.WARNING if event in _FAILURE_EVENTS else logging.INFO
        self._logger.log(
            level,
            json.dumps({k: v for k, v in record.items() if v is not None}, default=str),
            extra={"security_event": event.value},
        )
