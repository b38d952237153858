"""Shared test fixtures for gateway test suite."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton so tests never reuse a real client
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.config import AuthConfig
from auth.otp_store import InMemoryOtpStore
from auth.session import SessionCodec
from auth.types import Session


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

TEST_USER_EMAIL = "testuser@test.local"
TEST_USER_ID = "usr_00000001"

TEST_SESSION_SECRET = "test-session-secret-not-for-production"
TEST_BACKEND_URL = "http://backend.test"


# =============================================================================
# CLOCK
# =============================================================================


class FakeClock:
    """Controllable UTC clock. Call it like now_utc()."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Default config pointed at the fake backend."""
    return AuthConfig(directory_url=TEST_BACKEND_URL)


@pytest.fixture
def otp_store(config, clock) -> InMemoryOtpStore:
    return InMemoryOtpStore(config, clock=clock)


@pytest.fixture
def codec(clock) -> SessionCodec:
    return SessionCodec(TEST_SESSION_SECRET, clock=clock)


@pytest.fixture
def test_session(clock) -> Session:
    """A fresh session for the primary test user."""
    return Session(email=TEST_USER_EMAIL, user_id=TEST_USER_ID, created_at=clock())
