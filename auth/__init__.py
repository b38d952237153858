"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    InvalidInputError,
    InvalidEmailError,
    InvalidCodeError,
    OtpError,
    OtpNotFoundError,
    OtpExpiredError,
    OtpMismatchError,
    SessionMalformedError,
    SessionExpiredError,
    UpstreamUnavailableError,
    DirectoryError,
)
from auth.types import (
    PendingOtp,
    Session,
    ResolvedUser,
    UserSource,
    RequestCodeRequest,
    VerifyCodeRequest,
    normalize_email,
)
from auth.config import AuthConfig
from auth.otp_store import OtpStore, InMemoryOtpStore, ValkeyOtpStore, OtpSweeper
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionCodec
from auth.security_middleware import RouteGuardMiddleware, GuardAction, GuardDecision, decide
