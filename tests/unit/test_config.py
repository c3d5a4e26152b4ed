"""
Unit tests for fix orchestration configuration.
"""

import pytest

from dealsync.fixes.config import DEFAULT_FIX_CONFIG, FixOrchestrationConfig
from dealsync.fixes.errors import ConfigurationError


class TestFixOrchestrationConfig:
    """Test suite for FixOrchestrationConfig."""

    def test_defaults(self):
        """Test default operational parameters."""
        config = DEFAULT_FIX_CONFIG

        assert config.batch_size == 10
        assert config.retry_attempts == 3
        assert config.retry_delay_ms == 1000
        assert config.inter_batch_delay_ms == 1000
        assert config.enable_dry_run is False
        assert config.circuit_breaker_threshold == 5
        assert config.circuit_breaker_reset_ms == 60000
        assert config.request_timeout_seconds == 30.0

    def test_from_dict_accepts_camel_case(self):
        """Test camelCase keys map to fields."""
        config = FixOrchestrationConfig.from_dict({"batchSize": 3, "enableDryRun": "true"})

        assert config.batch_size == 3
        assert config.enable_dry_run is True

    def test_unknown_key_rejected(self):
        """Test that typos are not silently ignored."""
        with pytest.raises(ConfigurationError, match="Unknown configuration key"):
            FixOrchestrationConfig.from_dict({"batch_sise": 3})

    def test_uncoercible_value_rejected(self):
        """Test that bad values raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid value"):
            FixOrchestrationConfig.from_dict({"batch_size": "many"})

    @pytest.mark.parametrize("overrides", [
        {"batch_size": 0},
        {"retry_attempts": 0},
        {"circuit_breaker_threshold": 0},
        {"request_timeout_seconds": 0},
    ])
    def test_validate_ranges(self, overrides):
        """Test range checks."""
        with pytest.raises(ConfigurationError):
            FixOrchestrationConfig.from_dict(overrides)

    def test_merge(self):
        """Test overrides return a new config."""
        merged = DEFAULT_FIX_CONFIG.merge({"batch_size": 2})

        assert merged.batch_size == 2
        assert DEFAULT_FIX_CONFIG.batch_size == 10
        assert DEFAULT_FIX_CONFIG.merge(None) is DEFAULT_FIX_CONFIG

    def test_from_yaml_fix_section(self, tmp_path):
        """Test loading the ``fix:`` section of a YAML file."""
        path = tmp_path / "dealsync.yaml"
        path.write_text("fix:\n  batch_size: 4\n  retryDelayMs: 250\n")

        config = FixOrchestrationConfig.from_yaml(path)

        assert config.batch_size == 4
        assert config.retry_delay_ms == 250

    def test_from_yaml_requires_mapping(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "dealsync.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigurationError):
            FixOrchestrationConfig.from_yaml(path)

    def test_from_env(self):
        """Test DEALSYNC_* environment variables."""
        config = FixOrchestrationConfig.from_env({
            "DEALSYNC_BATCH_SIZE": "7",
            "DEALSYNC_ENABLE_DRY_RUN": "yes",
            "UNRELATED": "x",
        })

        assert config.batch_size == 7
        assert config.enable_dry_run is True

    def test_to_dict(self):
        assert DEFAULT_FIX_CONFIG.to_dict()["batch_size"] == 10
