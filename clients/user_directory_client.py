"""
User directory client - maps an email to a stable user id.

The backend owns user records. When it is unreachable, login still works:
the id falls back to a truncated SHA-256 of the normalized email, so the
same email always gets the same id, across restarts too.
"""

import hashlib
import logging
import re
from typing import Any

import requests

from auth.exceptions import DirectoryError, UpstreamUnavailableError
from auth.types import ResolvedUser, Session, UserSource
from utils.timezone import to_epoch_ms

logger = logging.getLogger(__name__)

_NAME_SEPARATORS = re.compile(r"[._-]")


def fallback_user_id(email: str, length: int = 16) -> str:
    """Deterministic local id for an email: sha256 hex digest, truncated."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()[:length]


def derive_display_name(email: str) -> str:
    """Display name from the email local part: 'jane.doe@x.com' -> 'Jane doe'."""
    local_part = email.split("@", 1)[0]
    if not local_part:
        return ""
    return local_part[0].upper() + _NAME_SEPARATORS.sub(" ", local_part[1:])


class UserDirectoryClient:
    """Resolves emails to user ids against the backend's user endpoints."""

    CREATE_USER_PATH = "/api/auth/create-user"
    GENERATE_TOKEN_PATH = "/api/auth/generate-token"

    def __init__(self, base_url: str, timeout_seconds: float = 5.0, fallback_id_length: int = 16):
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.fallback_id_length = fallback_id_length

    def _fallback(self, email: str) -> ResolvedUser:
        return ResolvedUser(
            id=fallback_user_id(email, self.fallback_id_length),
            email=email,
            source=UserSource.FALLBACK,
        )

    def resolve(self, email: str, name: str | None = None) -> ResolvedUser:
        """
        Get or create the user for email.

        Never raises for directory problems: network errors, timeouts,
        non-2xx answers and malformed bodies all yield a FALLBACK user.

        Args:
            email: Normalized email
            name: Optional display name for newly created users
        """
        payload: dict[str, Any] = {"email": email}
        if name:
            payload["name"] = name

        try:
            response = requests.post(
                f"{self.base_url}{self.CREATE_USER_PATH}",
                json=payload,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"User directory unreachable, using fallback id for {email}: {e}")
            return self._fallback(email)

        if not response.ok:
            logger.warning(
                f"User directory returned {response.status_code}, using fallback id for {email}"
            )
            return self._fallback(email)

        try:
            user_id = response.json()["user"]["id"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"User directory returned malformed body, using fallback id for {email}: {e}")
            return self._fallback(email)

        if user_id is None or str(user_id) == "":
            logger.warning(f"User directory returned empty id, using fallback id for {email}")
            return self._fallback(email)

        return ResolvedUser(id=str(user_id), email=email, source=UserSource.DIRECTORY)

    def issue_api_token(self, session: Session) -> dict:
        """
        Ask the backend for a user-scoped API token (used by external assistants).

        Returns:
            Backend JSON, containing at least 'token'.

        Raises:
            UpstreamUnavailableError: Backend unreachable or answered non-JSON.
            DirectoryError: Backend answered non-2xx.
        """
        session_data = {
            "email": session.email,
            "userId": session.user_id,
            "createdAt": to_epoch_ms(session.created_at),
        }

        try:
            response = requests.post(
                f"{self.base_url}{self.GENERATE_TOKEN_PATH}",
                json={
                    "session": session_data,
                    "email": session.email,
                    "user_id": session.user_id,
                },
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Token endpoint unreachable: {e}")
            raise UpstreamUnavailableError(f"Connection failed: {e}")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Token endpoint returned invalid JSON (status {response.status_code})")
            raise UpstreamUnavailableError("Invalid response from backend")

        if not response.ok:
            message = data.get("error") if isinstance(data, dict) else None
            raise DirectoryError(response.status_code, message or "Failed to generate token")

        if not isinstance(data, dict):
            raise UpstreamUnavailableError("Invalid response from backend")

        return data
