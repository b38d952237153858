"""HTTP routes for authentication."""

import ipaddress
import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.service import AuthService
from auth.session import SessionCodec
from auth.types import RequestCodeRequest, VerifyCodeRequest
from auth.exceptions import (
    DirectoryError,
    InvalidCodeError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
    SessionExpiredError,
    SessionMalformedError,
    UpstreamUnavailableError,
)
from clients.email_client import EmailGatewayError

logger = logging.getLogger(__name__)


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _error(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message, details))


def create_auth_router(auth_service: AuthService, codec: SessionCodec) -> APIRouter:
    """Create auth router with injected service and session codec."""
    router = APIRouter(tags=["auth"])

    @router.post("/request-otp")
    def request_otp(request: Request, response: Response, body: RequestCodeRequest):
        """Request a verification code.

        Email format is enforced by RequestCodeRequest, so a bad address
        never reaches the service and surfaces as VALIDATION_ERROR.

        Returns:
            - skipOtp=False: code issued and sent out-of-band
            - skipOtp=True: bypass mode, session cookie already set
        """
        try:
            result = auth_service.request_code(
                email=body.email,
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        except EmailGatewayError:
            return _error(500, ErrorCodes.DELIVERY_FAILED, "Failed to send verification code")

        if result.skip_otp:
            codec.set_cookie(response, result.session)
            return {
                "success": True,
                "message": "Logged in successfully (verification bypassed)",
                "email": result.email,
                "userId": result.user.id,
                "skipOtp": True,
            }

        return {
            "success": True,
            "message": "Verification code sent to your email",
            "email": result.email,
            "skipOtp": False,
        }

    @router.post("/verify-otp")
    def verify_otp(request: Request, response: Response, body: VerifyCodeRequest):
        """Verify a code and create the session.

        Sets the session cookie on success only.
        """
        try:
            result = auth_service.verify_code(
                email=body.email,
                code=body.otp,
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        except InvalidCodeError as e:
            return _error(400, ErrorCodes.INVALID_CODE, str(e))
        except OtpNotFoundError:
            return _error(
                400,
                ErrorCodes.CODE_NOT_FOUND,
                "No verification code found. Please request a new one.",
            )
        except OtpExpiredError:
            return _error(
                400,
                ErrorCodes.CODE_EXPIRED,
                "Verification code has expired. Please request a new one.",
            )
        except OtpMismatchError:
            return _error(400, ErrorCodes.CODE_MISMATCH, "Invalid verification code")

        codec.set_cookie(response, result.session)

        return {
            "success": True,
            "message": (
                "Verification successful (verification bypassed)"
                if result.bypassed
                else "Verification successful"
            ),
            "user": {
                "email": result.user.email,
                "id": result.user.id,
                "isNewUser": False,
            },
        }

    @router.post("/generate-gpt-token")
    def generate_gpt_token(request: Request):
        """Issue a user-scoped backend token for external assistant configuration."""
        try:
            session = codec.load_session(request)
        except SessionExpiredError:
            return _error(401, ErrorCodes.SESSION_EXPIRED, "Session expired. Please log in again.")
        except SessionMalformedError:
            return _error(401, ErrorCodes.NOT_AUTHENTICATED, "Invalid session data")
        if session is None:
            return _error(401, ErrorCodes.NOT_AUTHENTICATED, "No session found. Please log in first.")

        try:
            data = auth_service.generate_api_token(session, _get_client_ip(request))
        except DirectoryError as e:
            return _error(e.status_code, ErrorCodes.UPSTREAM_ERROR, str(e))
        except UpstreamUnavailableError as e:
            return _error(502, ErrorCodes.UPSTREAM_ERROR, "Failed to generate token", str(e))

        return {
            "success": True,
            "token": data.get("token"),
            "userId": data.get("userId"),
            "expiresIn": data.get("expiresIn"),
            "message": "Token generated successfully. Use this token in your assistant configuration.",
        }

    @router.get("/me")
    def get_current_user(request: Request):
        """Identity carried by the current session cookie."""
        try:
            session = codec.load_session(request)
        except SessionExpiredError:
            return _error(401, ErrorCodes.SESSION_EXPIRED, "Session expired. Please log in again.")
        except SessionMalformedError:
            session = None
        if session is None:
            return _error(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        return {
            "success": True,
            "user": {"email": session.email, "id": session.user_id},
        }

    @router.post("/logout")
    def logout(request: Request, response: Response):
        """Logout - clear the session cookie."""
        auth_service.logout(codec.read_session(request), _get_client_ip(request))
        codec.clear_cookie(response)
        return {"success": True, "message": "Logged out successfully"}

    return router
