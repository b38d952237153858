"""
Backend proxy client - forwards CRUD calls to the deal backend.

Identity is injected as `user_email`: into the query string for GET and
DELETE, into the JSON body for POST and PUT. Forwarding is at-most-once;
there are no retries.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import requests
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

IDENTITY_FIELD = "user_email"
QUERY_IDENTITY_METHODS = frozenset({"GET", "DELETE"})
BODY_IDENTITY_METHODS = frozenset({"POST", "PUT"})
SUPPORTED_METHODS = QUERY_IDENTITY_METHODS | BODY_IDENTITY_METHODS


class ProxyConfig(BaseModel):
    """Backend proxy configuration."""

    backend_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the deal backend",
    )
    proxy_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for each forwarded request",
        gt=0,
        le=60,
    )
    forwarded_headers: tuple[str, ...] = Field(
        default=("Accept", "Accept-Language", "Authorization"),
        description="Client headers copied onto the backend request",
    )

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        backend_url = os.getenv("BACKEND_URL")
        return cls(backend_url=backend_url) if backend_url else cls()


class BackendUnavailableError(Exception):
    """Backend could not be reached or timed out."""


class BackendResponseError(Exception):
    """Backend answered with a body that is not JSON."""


class InvalidProxyBodyError(ValueError):
    """Client body for a write request is not valid JSON."""


@dataclass
class BackendResponse:
    """Backend status and decoded JSON payload (None for an empty body)."""

    status_code: int
    payload: Any | None


class BackendProxyClient:
    """Forwards requests to the backend with caller identity attached."""

    def __init__(self, config: ProxyConfig):
        self._config = config
        self._base_url = config.backend_url.rstrip("/")

    def build_url(self, path: str) -> str:
        """Backend URL for a proxied path: /proxy/deals -> {backend}/api/deals."""
        return f"{self._base_url}/api/{path.lstrip('/')}"

    @staticmethod
    def build_query(
        method: str,
        query: Sequence[tuple[str, str]],
        user_email: str | None,
    ) -> list[tuple[str, str]]:
        """Query pairs with the identity set for read/delete methods.

        A client-supplied user_email never survives, with or without a session.
        """
        pairs = [(key, value) for key, value in query if key != IDENTITY_FIELD]
        if method in QUERY_IDENTITY_METHODS and user_email:
            pairs.append((IDENTITY_FIELD, user_email))
        return pairs

    @staticmethod
    def build_body(method: str, raw_body: bytes | None, user_email: str | None) -> bytes | None:
        """
        JSON body with the identity injected for write methods.

        A client-supplied user_email is dropped from object bodies even when
        there is no session to replace it.

        Raises:
            InvalidProxyBodyError: If a non-empty write body is not valid JSON.
        """
        if method not in BODY_IDENTITY_METHODS:
            return raw_body or None

        if not raw_body or not raw_body.strip():
            if not user_email:
                return None
            return json.dumps({IDENTITY_FIELD: user_email}).encode("utf-8")

        try:
            data = json.loads(raw_body)
        except ValueError as e:
            raise InvalidProxyBodyError(f"Request body must be valid JSON: {e}") from e

        if not isinstance(data, dict):
            if user_email:
                logger.warning(f"Proxy body is {type(data).__name__}, not an object; identity not injected")
            return raw_body

        claimed = IDENTITY_FIELD in data
        data.pop(IDENTITY_FIELD, None)
        if user_email:
            data[IDENTITY_FIELD] = user_email
        elif not claimed:
            return raw_body
        return json.dumps(data).encode("utf-8")

    def build_headers(self, client_headers: Mapping[str, str], has_body: bool) -> dict[str, str]:
        """Allow-listed client headers plus content type for bodies."""
        headers: dict[str, str] = {}
        for name in self._config.forwarded_headers:
            value = client_headers.get(name)
            if value:
                headers[name] = value
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    def forward(
        self,
        method: str,
        path: str,
        query: Sequence[tuple[str, str]],
        body: bytes | None,
        headers: Mapping[str, str],
        user_email: str | None,
    ) -> BackendResponse:
        """
        Forward one request to the backend.

        Raises:
            ValueError: Unsupported method.
            InvalidProxyBodyError: Write body is not valid JSON.
            BackendUnavailableError: Network failure or timeout.
            BackendResponseError: Backend body is not JSON.
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported proxy method '{method}'")

        url = self.build_url(path)
        params = self.build_query(method, query, user_email)
        data = self.build_body(method, body, user_email)

        logger.info(
            f"Proxy {method} /api/{path.lstrip('/')} "
            f"(identity={'yes' if user_email else 'no'}, body={'yes' if data else 'no'})"
        )

        try:
            response = requests.request(
                method,
                url,
                params=params,
                data=data,
                headers=self.build_headers(headers, data is not None),
                timeout=self._config.proxy_timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Proxy request to {url} failed: {e}")
            raise BackendUnavailableError(str(e))

        if not response.content or not response.content.strip():
            return BackendResponse(status_code=response.status_code, payload=None)

        try:
            payload = response.json()
        except ValueError:
            logger.error(f"Backend returned non-JSON body for {method} {url} (status {response.status_code})")
            raise BackendResponseError(f"Backend returned non-JSON response (status {response.status_code})")

        return BackendResponse(status_code=response.status_code, payload=payload)
