"""Authentication configuration."""

import os

from pydantic import BaseModel, Field, model_validator


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Durations use the unit in the field name. Development conveniences
    (OTP bypass, logging codes) are refused when production is set.
    """

    # One-time code settings
    otp_expiry_minutes: int = Field(
        default=10,
        description="How long a verification code remains valid",
        ge=1,
        le=60,
    )
    otp_max_attempts: int = Field(
        default=5,
        description="Wrong guesses allowed before the pending code is discarded",
        ge=1,
        le=20,
    )
    otp_sweep_interval_seconds: int = Field(
        default=60,
        description="How often expired codes are purged",
        ge=1,
        le=3600,
    )

    # Session settings
    session_cookie_name: str = Field(
        default="session",
        description="Name of the cookie holding the signed session",
    )
    session_max_age_seconds: int = Field(
        default=86400,  # 24 hours
        description="Session lifetime in seconds",
        ge=60,
        le=86400 * 30,
    )

    # Environment
    production: bool = Field(
        default=False,
        description="Production mode: secure cookies, no development shortcuts",
    )
    bypass_otp: bool = Field(
        default=False,
        description="Skip code verification entirely (development only)",
    )
    log_otp_codes: bool = Field(
        default=False,
        description="Write issued codes to the log (development only)",
    )

    # User directory
    directory_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the backend that owns user records",
    )
    directory_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for user directory calls",
        gt=0,
        le=30,
    )

    # Application
    app_name: str = Field(
        default="Dealflow",
        description="Application name for emails",
    )

    @model_validator(mode="after")
    def _no_shortcuts_in_production(self) -> "AuthConfig":
        if self.production and self.bypass_otp:
            raise ValueError("bypass_otp cannot be enabled in production")
        if self.production and self.log_otp_codes:
            raise ValueError("log_otp_codes cannot be enabled in production")
        return self

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """
        Build config from environment variables.

        APP_ENV=production, BYPASS_OTP, LOG_OTP_CODES, BACKEND_URL.
        Unset variables fall back to field defaults.
        """
        values: dict = {
            "production": os.getenv("APP_ENV", "development").lower() == "production",
            "bypass_otp": _env_flag("BYPASS_OTP"),
            "log_otp_codes": _env_flag("LOG_OTP_CODES"),
        }
        backend_url = os.getenv("BACKEND_URL")
        if backend_url:
            values["directory_url"] = backend_url
        return cls(**values)
