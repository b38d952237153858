"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidInputError(AuthError, ValueError):
    """
    Caller supplied a malformed email or code.

    Also a ValueError so pydantic validators and the global
    ValueError handler both report it as a 400.
    """


class InvalidEmailError(InvalidInputError):
    """Email does not have a local@domain.tld shape."""


class InvalidCodeError(InvalidInputError):
    """Verification code is missing or not six digits."""


class OtpError(AuthError):
    """Base class for one-time code lifecycle failures."""


class OtpNotFoundError(OtpError):
    """No pending code for this email (never issued, consumed, or swept)."""


class OtpExpiredError(OtpError):
    """Pending code is past its expiry. The entry has been deleted."""


class OtpMismatchError(OtpError):
    """
    Candidate code differs from the pending one.

    The entry survives so the user can retry, up to the attempt limit.
    """


class SessionMalformedError(AuthError):
    """Session cookie cannot be decoded or its signature does not match."""


class SessionExpiredError(AuthError):
    """Session is older than its maximum age and must be re-issued."""


class UpstreamUnavailableError(AuthError):
    """User directory could not be reached within the timeout."""


class DirectoryError(AuthError):
    """User directory answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)
