"""Tests for VaultClient - hvac is replaced with a MagicMock."""

from unittest.mock import MagicMock

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import (
    VaultClient,
    get_email_config,
    get_session_secret,
    get_valkey_url,
)

SECRETS = {
    "dealflow/session": {"signing_key": "s3cret"},
    "dealflow/valkey": {"url": "redis://valkey:6379/0"},
    "dealflow/email": {
        "gateway_url": "https://gw.example.com/send",
        "api_key": "key",
        "hmac_secret": "hmac",
    },
}


def _read_secret_version(path, raise_on_deleted_version=True):
    if path not in SECRETS:
        raise InvalidPath()
    return {"data": {"data": SECRETS[path]}}


@pytest.fixture
def hvac_client(monkeypatch):
    """Authenticated hvac client serving SECRETS."""
    monkeypatch.setenv("VAULT_ADDR", "http://vault.test:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)

    mock = MagicMock()
    mock.auth.approle.login.return_value = {"auth": {"client_token": "tok"}}
    mock.is_authenticated.return_value = True
    mock.secrets.kv.v2.read_secret_version.side_effect = _read_secret_version
    monkeypatch.setattr(vault_module.hvac, "Client", lambda **kwargs: mock)

    monkeypatch.setattr(vault_module, "_vault_client_instance", None)
    vault_module._secret_cache.clear()
    yield mock
    vault_module._secret_cache.clear()


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)

        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, monkeypatch):
        monkeypatch.setenv("VAULT_ADDR", "http://vault.test:8200")
        monkeypatch.delenv("VAULT_ROLE_ID", raising=False)
        monkeypatch.delenv("VAULT_SECRET_ID", raising=False)

        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_invalid_approle_raises_permission_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Forbidden("bad role")

        with pytest.raises(PermissionError, match="authentication"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()

        assert client.client.token == "tok"


class TestGetSecret:
    """Secret retrieval - paths automatically scoped to dealflow/."""

    def test_returns_field_value(self, hvac_client):
        assert VaultClient().get_secret("session", "signing_key") == "s3cret"

    def test_missing_path_raises(self, hvac_client):
        with pytest.raises(PermissionError, match="not found"):
            VaultClient().get_secret("nonexistent", "field")

    def test_access_denied_raises(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = Forbidden("denied")

        with pytest.raises(PermissionError, match="Access denied"):
            VaultClient().get_secret("session", "signing_key")

    def test_missing_field_raises_keyerror(self, hvac_client):
        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("session", "nonexistent_field")


class TestConvenienceFunctions:
    """Module-level convenience functions."""

    def test_get_session_secret(self, hvac_client):
        assert get_session_secret() == "s3cret"

    def test_get_valkey_url_returns_redis(self, hvac_client):
        assert get_valkey_url().startswith("redis://")

    def test_get_email_config(self, hvac_client):
        assert get_email_config() == SECRETS["dealflow/email"]

    def test_secrets_are_cached(self, hvac_client):
        get_session_secret()
        get_session_secret()

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1
