"""Shared utilities: logging with correlation IDs and Vault credentials."""

from dealsync.utils.logging_config import (
    CorrelationContext,
    StructuredJSONFormatter,
    configure_logging,
    correlation_id_filter,
    get_correlation_id,
)
from dealsync.utils.vault_client import HealthStatus, VaultClient, resolve_pipedrive_credentials

__all__ = [
    "CorrelationContext",
    "StructuredJSONFormatter",
    "configure_logging",
    "correlation_id_filter",
    "get_correlation_id",
    "HealthStatus",
    "VaultClient",
    "resolve_pipedrive_credentials",
]
