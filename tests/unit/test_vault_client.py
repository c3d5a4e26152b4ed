"""
Unit tests for vault_client module.
"""

import pytest
from unittest.mock import MagicMock, patch
from hvac.exceptions import InvalidPath, VaultError

from dealsync.utils.vault_client import VaultClient, resolve_pipedrive_credentials


class TestVaultClient:
    """Test suite for VaultClient class."""

    @pytest.fixture
    def mock_hvac_client(self):
        """Mock hvac.Client for testing."""
        with patch('dealsync.utils.vault_client.hvac.Client') as mock:
            client_instance = MagicMock()
            client_instance.is_authenticated.return_value = True
            mock.return_value = client_instance
            yield mock

    def test_init_with_env_vars(self, mock_hvac_client, monkeypatch):
        """Test VaultClient initialization with environment variables."""
        monkeypatch.setenv("VAULT_ADDR", "http://env-vault:8200")
        monkeypatch.setenv("VAULT_TOKEN", "env-token")

        client = VaultClient()

        assert client.vault_url == "http://env-vault:8200"
        assert client.mount_point == "secret"

    def test_init_missing_url_raises_error(self, monkeypatch):
        """Test that missing Vault URL raises ValueError."""
        monkeypatch.delenv("VAULT_ADDR", raising=False)
        with pytest.raises(ValueError, match="Vault URL must be provided"):
            VaultClient(vault_token="test-token")

    def test_init_authentication_failure(self, mock_hvac_client):
        """Test that authentication failure raises VaultError."""
        mock_hvac_client.return_value.is_authenticated.return_value = False

        with pytest.raises(VaultError, match="Failed to authenticate"):
            VaultClient(vault_url="http://test:8200", vault_token="bad-token")

    def test_get_pipedrive_credentials(self, mock_hvac_client):
        """Test reading the Pipedrive secret."""
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"api_key": "abc", "company_domain": "acme", "extra": "x"}}
        }

        client = VaultClient(vault_url="http://test:8200", vault_token="test-token")
        credentials = client.get_pipedrive_credentials()

        assert credentials == {"api_key": "abc", "company_domain": "acme"}
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="pipedrive-credentials", mount_point="secret"
        )

    def test_get_pipedrive_credentials_incomplete(self, mock_hvac_client):
        """Test that a secret without company_domain is rejected."""
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"api_key": "abc"}}
        }

        client = VaultClient(vault_url="http://test:8200", vault_token="test-token")
        with pytest.raises(VaultError, match="company_domain"):
            client.get_pipedrive_credentials()

    def test_get_secret_not_found(self, mock_hvac_client):
        """Test that InvalidPath propagates."""
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.side_effect = InvalidPath("missing")

        client = VaultClient(vault_url="http://test:8200", vault_token="test-token")
        with pytest.raises(InvalidPath):
            client.get_secret("nope")

    def test_get_secret_other_errors_wrapped(self, mock_hvac_client):
        mock_hvac_client.return_value.secrets.kv.v2.read_secret_version.side_effect = RuntimeError("down")

        client = VaultClient(vault_url="http://test:8200", vault_token="test-token")
        with pytest.raises(VaultError, match="Secret retrieval failed"):
            client.get_secret("pipedrive-credentials")

    def test_health_check(self, mock_hvac_client):
        """Test HealthStatus truthiness."""
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": False}

        client = VaultClient(vault_url="http://test:8200", vault_token="test-token")
        status = client.health_check()

        assert status
        assert status.authenticated is True
        assert status.error is None

    def test_health_check_sealed(self, mock_hvac_client):
        mock_hvac_client.return_value.sys.read_health_status.return_value = {"sealed": True}

        client = VaultClient(vault_url="http://test:8200", vault_token="test-token")
        status = client.health_check()

        assert not status
        assert status.error == "Vault is sealed"

    def test_context_manager(self, mock_hvac_client):
        with VaultClient(vault_url="http://test:8200", vault_token="test-token") as client:
            assert client.client is not None
        assert client.client is None


class TestResolvePipedriveCredentials:
    """Test suite for resolve_pipedrive_credentials."""

    def test_environment_takes_precedence(self):
        credentials = resolve_pipedrive_credentials({
            "PIPEDRIVE_API_KEY": "abc",
            "PIPEDRIVE_COMPANY_DOMAIN": "acme",
            "VAULT_ADDR": "http://vault:8200",
        })

        assert credentials == {"api_key": "abc", "company_domain": "acme"}

    def test_falls_back_to_vault(self):
        with patch('dealsync.utils.vault_client.VaultClient') as vault_cls:
            vault = vault_cls.return_value.__enter__.return_value
            vault.get_pipedrive_credentials.return_value = {"api_key": "v", "company_domain": "d"}

            credentials = resolve_pipedrive_credentials({"VAULT_ADDR": "http://vault:8200", "VAULT_TOKEN": "t"})

        assert credentials == {"api_key": "v", "company_domain": "d"}
        vault_cls.assert_called_once_with(vault_url="http://vault:8200", vault_token="t")

    def test_missing_everywhere(self):
        with pytest.raises(ValueError, match="credentials not found"):
            resolve_pipedrive_credentials({})
