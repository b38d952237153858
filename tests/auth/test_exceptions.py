"""Tests for auth exception hierarchy."""

import pytest

from auth.exceptions import (
    AuthError,
    DirectoryError,
    InvalidCodeError,
    InvalidEmailError,
    InvalidInputError,
    OtpError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
    SessionExpiredError,
    SessionMalformedError,
    UpstreamUnavailableError,
)


class TestHierarchy:

    @pytest.mark.parametrize(
        "exc",
        [
            InvalidEmailError,
            InvalidCodeError,
            OtpNotFoundError,
            OtpExpiredError,
            OtpMismatchError,
            SessionMalformedError,
            SessionExpiredError,
            UpstreamUnavailableError,
        ],
    )
    def test_all_are_auth_errors(self, exc):
        assert issubclass(exc, AuthError)

    def test_input_errors_are_value_errors(self):
        """Malformed input maps to 400 through the ValueError handler."""
        assert issubclass(InvalidEmailError, InvalidInputError)
        assert issubclass(InvalidCodeError, ValueError)

    @pytest.mark.parametrize("exc", [OtpNotFoundError, OtpExpiredError, OtpMismatchError])
    def test_lifecycle_errors_share_base(self, exc):
        assert issubclass(exc, OtpError)
        assert not issubclass(exc, ValueError)


class TestDirectoryError:

    def test_carries_status(self):
        err = DirectoryError(404, "User not found")

        assert err.status_code == 404
        assert str(err) == "User not found"
