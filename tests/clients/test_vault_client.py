"""Tests for VaultClient - HashiCorp Vault secrets management.

hvac.Client is patched; no Vault server is needed.
"""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_email_config,
    get_signing_secrets,
    reset_vault_cache,
)


@pytest.fixture(autouse=True)
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.example.com")
    monkeypatch.setenv("VAULT_ROLE_ID", "role-id")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret-id")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)
    reset_vault_cache()
    yield
    reset_vault_cache()


@pytest.fixture
def hvac_client():
    """Patched hvac.Client whose secrets live in `hvac_client.secrets_by_path`."""
    client = MagicMock()
    client.is_authenticated.return_value = True
    client.auth.approle.login.return_value = {"auth": {"client_token": "s.token"}}
    client.secrets_by_path = {}

    def read_secret_version(path, raise_on_deleted_version=True):
        if path not in client.secrets_by_path:
            raise InvalidPath()
        return {"data": {"data": client.secrets_by_path[path]}}

    client.secrets.kv.v2.read_secret_version.side_effect = read_secret_version

    with patch("clients.vault_client.hvac.Client", return_value=client):
        yield client


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR")
        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, monkeypatch):
        monkeypatch.delenv("VAULT_ROLE_ID")
        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_approle_failure_raises_permission_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Forbidden("bad role")
        with pytest.raises(PermissionError, match="AppRole authentication failed"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()
        assert client.client.token == "s.token"


class TestGetSecret:
    def test_path_scoped_to_prefix(self, hvac_client):
        hvac_client.secrets_by_path["authgate/database"] = {"url": "postgresql://db"}

        assert VaultClient().get_secret("database", "url") == "postgresql://db"

    def test_missing_path(self, hvac_client):
        with pytest.raises(PermissionError, match="not found"):
            VaultClient().get_secret("nope", "url")

    def test_missing_field(self, hvac_client):
        hvac_client.secrets_by_path["authgate/database"] = {"url": "postgresql://db"}
        with pytest.raises(KeyError, match="password"):
            VaultClient().get_secret("database", "password")


class TestCachedHelpers:
    def test_signing_secrets(self, hvac_client):
        hvac_client.secrets_by_path["authgate/signing"] = {
            "jwt_secret": "j" * 40,
            "magic_link_secret": "m" * 40,
        }
        assert get_signing_secrets() == {"jwt_secret": "j" * 40, "magic_link_secret": "m" * 40}

    def test_email_config(self, hvac_client):
        hvac_client.secrets_by_path["authgate/email"] = {
            "gateway_url": "https://gw",
            "api_key": "k",
            "hmac_secret": "h",
        }
        assert set(get_email_config()) == {"gateway_url", "api_key", "hmac_secret"}

    def test_values_cached(self, hvac_client):
        hvac_client.secrets_by_path["authgate/database"] = {"url": "postgresql://db"}

        get_database_url()
        get_database_url()

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1

    def test_reset_clears_cache(self, hvac_client):
        hvac_client.secrets_by_path["authgate/database"] = {"url": "postgresql://db"}
        get_database_url()

        reset_vault_cache()

        assert vault_module._secret_cache == {}
        assert vault_module._vault_client_instance is None
