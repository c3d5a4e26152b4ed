"""
Vault Client Utility

Reads Pipedrive credentials and other secrets from HashiCorp Vault's KV v2
engine.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import hvac
from hvac.exceptions import InvalidPath, VaultError

logger = logging.getLogger(__name__)

PIPEDRIVE_SECRET_PATH = "pipedrive-credentials"


@dataclass
class HealthStatus:
    """
    Structured health status for Vault client.

    Attributes:
        healthy: Overall health status (True if healthy)
        authenticated: Whether client is authenticated
        sealed: Whether Vault is sealed
        error: Error message if health check failed
    """

    healthy: bool
    authenticated: bool
    sealed: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.healthy


class VaultClient:
    """Client for reading secrets from HashiCorp Vault."""

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault authentication token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV secrets engine mount point

        Raises:
            ValueError: If required parameters are missing
            VaultError: If connection to Vault fails
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        try:
            self.client = hvac.Client(url=self.vault_url, token=self.vault_token, verify=verify_ssl)
            authenticated = self.client.is_authenticated()
        except Exception as e:
            logger.error(f"Failed to initialize Vault client: {e}")
            raise VaultError(f"Vault initialization failed: {e}")

        if not authenticated:
            raise VaultError("Failed to authenticate with Vault")

        logger.info(f"Connected to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Retrieve a secret from Vault.

        Args:
            path: Secret path (e.g., "pipedrive-credentials")

        Returns:
            Dictionary containing secret data

        Raises:
            InvalidPath: If secret path does not exist
            VaultError: If retrieval fails
        """
        try:
            logger.debug(f"Reading secret {self.mount_point}/data/{path}")
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except Exception as e:
            logger.error(f"Failed to retrieve secret from {path}: {e}")
            raise VaultError(f"Secret retrieval failed: {e}")

        if not response or "data" not in response:
            raise InvalidPath(f"No data found at path: {path}")

        return response["data"].get("data", {})

    def get_pipedrive_credentials(self, path: str = PIPEDRIVE_SECRET_PATH) -> Dict[str, str]:
        """
        Retrieve Pipedrive API credentials.

        The secret must hold ``api_key`` and ``company_domain``.

        Returns:
            Dictionary with api_key and company_domain

        Raises:
            VaultError: If the secret is missing either field
        """
        secret = self.get_secret(path)
        missing = [k for k in ("api_key", "company_domain") if not secret.get(k)]
        if missing:
            raise VaultError(f"Secret {path} is missing fields: {missing}")

        logger.info("Retrieved Pipedrive credentials")
        return {"api_key": secret["api_key"], "company_domain": secret["company_domain"]}

    def health_check(self) -> HealthStatus:
        """
        Check if Vault is accessible and authenticated.

        Returns:
            HealthStatus; truthy when Vault is authenticated and unsealed
        """
        try:
            if not self.client.is_authenticated():
                logger.warning("Vault authentication check failed")
                return HealthStatus(healthy=False, authenticated=False, sealed=True, error="Not authenticated")

            health = self.client.sys.read_health_status(method="GET")
            is_sealed = health.get("sealed", True)

            if is_sealed:
                logger.warning("Vault is sealed")

            return HealthStatus(
                healthy=not is_sealed,
                authenticated=True,
                sealed=is_sealed,
                error="Vault is sealed" if is_sealed else None
            )

        except Exception as e:
            logger.error(f"Vault health check failed: {e}")
            return HealthStatus(healthy=False, authenticated=False, sealed=True, error=str(e))

    def list_secrets(self, path: str = "") -> List[str]:
        try:
            response = self.client.secrets.kv.v2.list_secrets(path=path, mount_point=self.mount_point)
        except Exception as e:
            logger.error(f"Failed to list secrets at {path}: {e}")
            raise VaultError(f"Secret listing failed: {e}")

        return response.get("data", {}).get("keys", [])

    def close(self):
        self.client = None
        logger.info("Vault client connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def resolve_pipedrive_credentials(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Find Pipedrive credentials in the environment, falling back to Vault.

    ``PIPEDRIVE_API_KEY`` and ``PIPEDRIVE_COMPANY_DOMAIN`` take precedence;
    otherwise Vault is used when ``VAULT_ADDR`` is set.

    Raises:
        ValueError: If neither source provides credentials
    """
    environ = os.environ if environ is None else environ
    api_key = environ.get("PIPEDRIVE_API_KEY")
    company_domain = environ.get("PIPEDRIVE_COMPANY_DOMAIN")

    if api_key and company_domain:
        logger.debug("Using Pipedrive credentials from environment")
        return {"api_key": api_key, "company_domain": company_domain}

    if environ.get("VAULT_ADDR"):
        with VaultClient(vault_url=environ["VAULT_ADDR"], vault_token=environ.get("VAULT_TOKEN")) as vault:
            return vault.get_pipedrive_credentials()

    raise ValueError(
        "Pipedrive credentials not found: set PIPEDRIVE_API_KEY and PIPEDRIVE_COMPANY_DOMAIN "
        "or configure VAULT_ADDR"
    )
