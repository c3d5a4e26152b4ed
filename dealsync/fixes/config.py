"""
Configuration for the fix orchestration system.

Values come from defaults, a YAML file (``fix:`` section) or ``DEALSYNC_*``
environment variables. Keys may be given in snake_case or camelCase.
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from dealsync.fixes.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "DEALSYNC_"


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@dataclass(frozen=True)
class FixOrchestrationConfig:
    """
    Operational parameters for fix execution.

    Attributes:
        batch_size: Number of fixes processed per batch
        retry_attempts: Total attempts per fix (first try included)
        retry_delay_ms: Base delay between attempts; attempt N waits N times this
        inter_batch_delay_ms: Pause between consecutive batches
        enable_dry_run: Validate and report without mutating any record
        circuit_breaker_threshold: Consecutive failed fixes that open the breaker
        circuit_breaker_reset_ms: How long the breaker stays open
        request_timeout_seconds: Timeout applied to every outbound API call
        value_tolerance_percentage: Tolerance used when matching record values
        enable_value_comparison: Report value discrepancies on matched records
    """

    batch_size: int = 10
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    inter_batch_delay_ms: int = 1000
    enable_dry_run: bool = False
    circuit_breaker_threshold: int = 5
    circuit_breaker_reset_ms: int = 60000
    request_timeout_seconds: float = 30.0
    value_tolerance_percentage: float = 5.0
    enable_value_comparison: bool = True

    def validate(self) -> "FixOrchestrationConfig":
        """
        Check value ranges.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any value is out of range
        """
        errors = []
        if self.batch_size < 1:
            errors.append("batch_size must be at least 1")
        if self.retry_attempts < 1:
            errors.append("retry_attempts must be at least 1")
        if self.retry_delay_ms < 0:
            errors.append("retry_delay_ms must be non-negative")
        if self.inter_batch_delay_ms < 0:
            errors.append("inter_batch_delay_ms must be non-negative")
        if self.circuit_breaker_threshold < 1:
            errors.append("circuit_breaker_threshold must be at least 1")
        if self.circuit_breaker_reset_ms < 0:
            errors.append("circuit_breaker_reset_ms must be non-negative")
        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")
        if self.value_tolerance_percentage < 0:
            errors.append("value_tolerance_percentage must be non-negative")

        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    def merge(self, overrides: Optional[Dict[str, Any]] = None) -> "FixOrchestrationConfig":
        """Return a copy with overrides applied."""
        if not overrides:
            return self
        return replace(self, **self._coerce(overrides)).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "FixOrchestrationConfig":
        """
        Build a config from a dictionary, filling missing keys with defaults.

        Raises:
            ConfigurationError: On unknown keys or uncoercible values
        """
        return cls(**cls._coerce(data or {})).validate()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "FixOrchestrationConfig":
        """
        Load config from the ``fix:`` section of a YAML file.

        A file without a ``fix:`` section is read as the section itself.
        """
        with open(path, "r") as f:
            document = yaml.safe_load(f) or {}

        if not isinstance(document, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        section = document.get("fix", document)
        logger.info(f"Loaded fix configuration from {path}")
        return cls.from_dict(section)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "FixOrchestrationConfig":
        """Build a config from ``DEALSYNC_<FIELD>`` environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is not None:
                values[f.name] = raw
        return cls.from_dict(values)

    @classmethod
    def _coerce(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        known = {f.name: f for f in fields(cls)}
        defaults = cls()
        coerced = {}

        for key, value in data.items():
            name = _snake_case(key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration key: {key}")

            expected = type(getattr(defaults, name))
            try:
                if expected is bool and isinstance(value, str):
                    coerced[name] = value.strip().lower() in ("1", "true", "yes", "on")
                else:
                    coerced[name] = expected(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {key}: {value!r} ({e})")

        return coerced


DEFAULT_FIX_CONFIG = FixOrchestrationConfig()
