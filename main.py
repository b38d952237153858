"""Application assembly: wires config, stores, clients and routers into a FastAPI app."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.proxy import create_proxy_router
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.otp_store import InMemoryOtpStore, OtpStore, OtpSweeper, ValkeyOtpStore
from auth.security_logger import SecurityLogger
from auth.security_middleware import RouteGuardMiddleware
from auth.service import AuthService
from auth.session import SessionCodec
from clients.backend_client import BackendProxyClient, ProxyConfig
from clients.email_client import EmailGatewayClient
from clients.user_directory_client import UserDirectoryClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_email_config, get_session_secret, get_valkey_url

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Root logging format and level (LOG_LEVEL, default INFO)."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    auth_config: AuthConfig,
    proxy_config: ProxyConfig,
    session_secret: str,
    otp_store: OtpStore | None = None,
    email_client: EmailGatewayClient | None = None,
    directory: UserDirectoryClient | None = None,
) -> FastAPI:
    """Build the app. Collaborators default to in-process implementations."""
    otp_store = otp_store or InMemoryOtpStore(auth_config)
    directory = directory or UserDirectoryClient(
        auth_config.directory_url,
        timeout_seconds=auth_config.directory_timeout_seconds,
    )
    security_logger = SecurityLogger()
    codec = SessionCodec(
        session_secret,
        cookie_name=auth_config.session_cookie_name,
        max_age_seconds=auth_config.session_max_age_seconds,
        production=auth_config.production,
        security_logger=security_logger,
    )
    auth_service = AuthService(
        config=auth_config,
        otp_store=otp_store,
        directory=directory,
        security_logger=security_logger,
        email_client=email_client,
    )
    sweeper = OtpSweeper(otp_store, auth_config.otp_sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(title="Dealflow Gateway", lifespan=lifespan)
    app.state.otp_store = otp_store
    app.state.sweeper = sweeper
    app.state.session_codec = codec

    app.add_middleware(RouteGuardMiddleware, cookie_name=auth_config.session_cookie_name)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_auth_router(auth_service, codec), prefix="/api/auth")
    app.include_router(create_proxy_router(BackendProxyClient(proxy_config), codec), prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def build_app_from_env() -> FastAPI:
    """Production entry point: config from the environment, secrets from Vault.

    OTP_STORE=valkey selects the shared store; EMAIL_GATEWAY=off skips delivery
    (development only, pair with LOG_OTP_CODES or BYPASS_OTP).
    """
    configure_logging()
    auth_config = AuthConfig.from_env()
    proxy_config = ProxyConfig.from_env()

    otp_store: OtpStore | None = None
    if os.getenv("OTP_STORE", "memory").lower() == "valkey":
        otp_store = ValkeyOtpStore(ValkeyClient(get_valkey_url()), auth_config)

    email_client = None
    if os.getenv("EMAIL_GATEWAY", "on").lower() != "off":
        email_client = EmailGatewayClient(**get_email_config())

    logger.info(
        f"Starting gateway (production={auth_config.production}, "
        f"otp_store={type(otp_store or InMemoryOtpStore).__name__}, backend={proxy_config.backend_url})"
    )

    return create_app(
        auth_config,
        proxy_config,
        session_secret=get_session_secret(),
        otp_store=otp_store,
        email_client=email_client,
    )
