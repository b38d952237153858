"""Authentication service - orchestrates the email one-time code flow."""

import logging
from dataclasses import dataclass

from auth.config import AuthConfig
from auth.otp_store import OtpStore
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.types import OTP_PATTERN, ResolvedUser, Session, normalize_email
from auth.exceptions import (
    InvalidCodeError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
)
from clients.email_client import EmailGatewayClient
from clients.user_directory_client import UserDirectoryClient, derive_display_name
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass
class RequestCodeResult:
    """Result of a code request.

    In bypass mode skip_otp is True and user/session are set; the caller
    writes the session cookie. Otherwise a code was issued and both are None.
    """

    email: str
    skip_otp: bool
    user: ResolvedUser | None = None
    session: Session | None = None


@dataclass
class VerifyResult:
    """Result of a successful verification."""

    user: ResolvedUser
    session: Session
    bypassed: bool = False


class AuthService:
    """Orchestrates one-time code authentication.

    Handles:
    - Code requests (issue + out-of-band delivery, or bypass)
    - Code verification and session creation
    - API token issuance for an existing session

    States per email: unauthenticated -> code requested -> verified.
    Bypass mode collapses the middle state.
    """

    def __init__(
        self,
        config: AuthConfig,
        otp_store: OtpStore,
        directory: UserDirectoryClient,
        security_logger: SecurityLogger,
        email_client: EmailGatewayClient | None = None,
    ):
        self._config = config
        self._otp_store = otp_store
        self._directory = directory
        self._security_logger = security_logger
        self._email_client = email_client

        if config.bypass_otp:
            logger.warning("OTP bypass is enabled - codes are not checked")
        if email_client is None and not config.log_otp_codes:
            logger.warning("No email gateway configured - verification codes cannot be delivered")

    @property
    def bypass_enabled(self) -> bool:
        return self._config.bypass_otp

    def _establish_session(
        self,
        email: str,
        ip_address: str | None,
        user_agent: str | None,
        name: str | None = None,
    ) -> tuple[ResolvedUser, Session]:
        """Resolve identity and build the session that authorizes it."""
        user = self._directory.resolve(email, name=name)

        if user.degraded:
            self._security_logger.log(
                SecurityEvent.DIRECTORY_FALLBACK,
                email=email,
                user_id=user.id,
                ip_address=ip_address,
            )

        session = Session(email=email, user_id=user.id, created_at=now_utc())

        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            email=email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"user_source": user.source.value},
        )
        return user, session

    def request_code(
        self,
        email: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> RequestCodeResult:
        """Request a verification code for email.

        Flow:
        1. Normalize and validate email
        2. Bypass mode: resolve user, build session, skip code entry
        3. Otherwise: issue code, deliver out-of-band, log event

        Raises:
            InvalidEmailError: If email is malformed.
            EmailGatewayError: If delivery fails.
        """
        email = normalize_email(email)

        if self._config.bypass_otp:
            user, session = self._establish_session(
                email, ip_address, user_agent, name=derive_display_name(email)
            )
            self._security_logger.log(
                SecurityEvent.OTP_BYPASSED,
                email=email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return RequestCodeResult(email=email, skip_otp=True, user=user, session=session)

        code = self._otp_store.issue(email)

        self._security_logger.log(
            SecurityEvent.OTP_REQUESTED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        if self._config.log_otp_codes:
            logger.info(
                f"[OTP for {email}]: {code} (expires in {self._config.otp_expiry_minutes} minutes)"
            )

        if self._email_client is not None:
            # May raise EmailGatewayError
            self._email_client.send_otp_code(
                email=email,
                code=code,
                app_name=self._config.app_name,
                expires_in_minutes=self._config.otp_expiry_minutes,
            )
            self._security_logger.log(
                SecurityEvent.OTP_SENT,
                email=email,
                ip_address=ip_address,
            )

        return RequestCodeResult(email=email, skip_otp=False)

    def verify_code(
        self,
        email: str,
        code: str | None,
        ip_address: str | None,
        user_agent: str | None,
    ) -> VerifyResult:
        """Verify a code and build the session.

        Flow:
        1. Normalize email
        2. Bypass mode: no code required, resolve user, build session
        3. Otherwise: validate 6-digit format, consume code, resolve user

        Raises:
            InvalidEmailError: If email is malformed.
            InvalidCodeError: If code is missing or not six digits.
            OtpNotFoundError, OtpExpiredError, OtpMismatchError: Code lifecycle failures.
        """
        email = normalize_email(email)

        if self._config.bypass_otp:
            user, session = self._establish_session(email, ip_address, user_agent)
            self._security_logger.log(
                SecurityEvent.OTP_BYPASSED,
                email=email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return VerifyResult(user=user, session=session, bypassed=True)

        if code is None or not isinstance(code, str) or not code.strip():
            raise InvalidCodeError("Verification code is required")

        code = code.strip()
        if not OTP_PATTERN.match(code):
            raise InvalidCodeError("Verification code must be 6 digits")

        try:
            self._otp_store.verify(email, code)
        except OtpExpiredError:
            self._security_logger.log(
                SecurityEvent.OTP_EXPIRED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise
        except (OtpNotFoundError, OtpMismatchError) as e:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "not_found" if isinstance(e, OtpNotFoundError) else "mismatch"},
            )
            raise

        self._security_logger.log(
            SecurityEvent.OTP_VERIFIED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        user, session = self._establish_session(email, ip_address, user_agent)
        return VerifyResult(user=user, session=session)

    def generate_api_token(self, session: Session, ip_address: str | None) -> dict:
        """Issue a backend API token for the session's user.

        Raises:
            UpstreamUnavailableError: Backend unreachable.
            DirectoryError: Backend refused.
        """
        data = self._directory.issue_api_token(session)
        self._security_logger.log(
            SecurityEvent.API_TOKEN_ISSUED,
            email=session.email,
            user_id=session.user_id,
            ip_address=ip_address,
        )
        return data

    def logout(self, session: Session | None, ip_address: str | None) -> None:
        """Record a logout. The cookie itself is cleared by the caller."""
        self._security_logger.log(
            SecurityEvent.SESSION_REVOKED,
            email=session.email if session else None,
            user_id=session.user_id if session else None,
            ip_address=ip_address,
        )
