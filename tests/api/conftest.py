"""API test fixtures - assembled app with a mocked directory and a fake backend URL."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from auth.config import AuthConfig
from auth.types import ResolvedUser, Session, UserSource
from clients.backend_client import ProxyConfig
from clients.user_directory_client import UserDirectoryClient
from main import create_app
from utils.timezone import now_utc

BACKEND_URL = "http://backend.test"
SESSION_SECRET = "api-fixture-secret"


@pytest.fixture
def directory():
    mock = Mock(spec=UserDirectoryClient)
    mock.resolve.side_effect = lambda email, name=None: ResolvedUser(
        id="usr_7", email=email, source=UserSource.DIRECTORY
    )
    return mock


@pytest.fixture
def app(directory):
    return create_app(
        AuthConfig(directory_url=BACKEND_URL),
        ProxyConfig(backend_url=BACKEND_URL),
        session_secret=SESSION_SECRET,
        directory=directory,
    )


@pytest.fixture
def client(app):
    """Anonymous client."""
    return TestClient(app, raise_server_exceptions=False, follow_redirects=False)


@pytest.fixture
def authenticated_client(app):
    """Client carrying a valid signed session for owner@firm.com."""
    client = TestClient(app, raise_server_exceptions=False, follow_redirects=False)
    session = Session(email="owner@firm.com", user_id="usr_7", created_at=now_utc())
    client.cookies.set("session", app.state.session_codec.encode(session))
    return client
