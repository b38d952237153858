"""Session cookie encoding.

The session lives entirely client-side. The cookie value is
base64url(JSON).base64url(HMAC-SHA256 over the first part), so the server
can trust the identity inside it only after the signature checks out.
JSON layout: {"email": ..., "userId": ..., "createdAt": <epoch ms>}.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta
from typing import Callable

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import Response

from auth.exceptions import SessionExpiredError, SessionMalformedError
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import Session
from utils.timezone import from_epoch_ms, now_utc, to_epoch_ms

logger = logging.getLogger(__name__)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


class SessionCodec:
    """Signs, verifies and writes the session cookie.

    Usage:
        codec = SessionCodec(secret, production=True)
        codec.set_cookie(response, session)
        session = codec.read_session(request)  # None if absent or invalid
    """

    def __init__(
        self,
        secret: str,
        cookie_name: str = "session",
        max_age_seconds: int = 86400,
        production: bool = False,
        clock: Callable[[], datetime] = now_utc,
        security_logger: SecurityLogger | None = None,
    ):
        if not secret:
            raise ValueError("secret is required")

        self._secret = secret.encode("utf-8")
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        self._production = production
        self._clock = clock
        self._security_logger = security_logger

    def _sign(self, payload: str) -> str:
        digest = hmac.new(self._secret, payload.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def encode(self, session: Session) -> str:
        """Serialize and sign a session into an opaque cookie value."""
        body = json.dumps(
            {
                "email": session.email,
                "userId": session.user_id,
                "createdAt": to_epoch_ms(session.created_at),
            },
            separators=(",", ":"),
        )
        payload = _b64encode(body.encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def decode(self, value: str) -> Session:
        """Verify and parse a cookie value.

        Raises:
            SessionMalformedError: Bad shape, bad signature, or bad content.
            SessionExpiredError: Signature valid but older than max age.
        """
        payload, sep, signature = value.rpartition(".")
        if not sep or not payload or not signature or not value.isascii():
            raise SessionMalformedError("Session value is not a signed token")

        if not hmac.compare_digest(self._sign(payload).encode(), signature.encode()):
            raise SessionMalformedError("Session signature mismatch")

        try:
            data = json.loads(_b64decode(payload))
            session = Session(
                email=data["email"],
                user_id=str(data["userId"]),
                created_at=from_epoch_ms(data["createdAt"]),
            )
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError, ValidationError) as e:
            raise SessionMalformedError(f"Session payload invalid: {e}") from e

        if self._clock() - session.created_at > timedelta(seconds=self.max_age_seconds):
            raise SessionExpiredError("Session expired")

        return session

    def set_cookie(self, response: Response, session: Session) -> None:
        """Write the session cookie onto a response."""
        response.set_cookie(
            key=self.cookie_name,
            value=self.encode(session),
            httponly=True,
            secure=self._production,
            samesite="lax",
            max_age=self.max_age_seconds,
            path="/",
        )

    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            httponly=True,
            secure=self._production,
            samesite="lax",
        )

    def load_session(self, request: Request) -> Session | None:
        """Session from the request cookie, or None if no cookie was sent.

        A cookie that fails to decode is recorded as a rejected session.

        Raises:
            SessionMalformedError: Cookie present but not a valid signed session.
            SessionExpiredError: Cookie valid but older than max age.
        """
        value = request.cookies.get(self.cookie_name)
        if not value:
            return None
        try:
            return self.decode(value)
        except SessionMalformedError as e:
            logger.warning(f"Rejecting malformed session cookie: {e}")
            self._log_rejected(request, "malformed")
            raise
        except SessionExpiredError:
            logger.info("Rejecting expired session cookie")
            self._log_rejected(request, "expired")
            raise

    def read_session(self, request: Request) -> Session | None:
        """Session from the request cookie, or None if absent, malformed or expired."""
        try:
            return self.load_session(request)
        except (SessionMalformedError, SessionExpiredError):
            return None

    def _log_rejected(self, request: Request, reason: str) -> None:
        if self._security_logger is None:
            return
        self._security_logger.log(
            SecurityEvent.SESSION_REJECTED,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
            details={"reason": reason},
        )
