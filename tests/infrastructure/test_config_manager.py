"""Tests for diff run configuration.

These tests verify that:
1. Environment variables and .env files populate DiffConfig
2. Explicit overrides take precedence, unset overrides do not mask the environment
3. Invalid scopes are rejected with ScopeError before any archive is opened
"""

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from diffmig.domain.ports import ScopeError
from diffmig.domain.services.scope_filter import Scope
from diffmig.infrastructure.config_manager import ConfigManager, DiffConfig


class TestDiffConfig:
    """Test DiffConfig validation."""

    def test_defaults(self):
        """Test default configuration."""
        config = DiffConfig()

        assert config.scope == Scope.ALL
        assert config.debug is False
        assert config.workers == 1
        assert config.log_json is False

    def test_scope_from_string(self):
        """Test that scope selector strings are accepted."""
        assert DiffConfig(scope="clinical_datum_variants_only").scope == Scope.CLINICAL_DATUM_VARIANTS_ONLY

    def test_workers_must_be_positive(self):
        """Test that zero workers is rejected."""
        with pytest.raises(ValidationError):
            DiffConfig(workers=0)

    def test_frozen(self):
        """Test that a config cannot be changed once built."""
        config = DiffConfig()
        with pytest.raises(ValidationError):
            config.debug = True


class TestConfigManagerEnvironment:
    """Test loading configuration from the environment."""

    def test_empty_environment(self, tmp_path):
        """Test that an empty environment gives the defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = ConfigManager.from_environment(env_file=tmp_path / ".env").get_diff_config()

        assert config == DiffConfig()

    def test_environment_variables(self, tmp_path):
        """Test that DIFFMIG_* variables populate the config."""
        env = {
            "DIFFMIG_SCOPE": "clinical_datum_variants_only",
            "DIFFMIG_DEBUG": "true",
            "DIFFMIG_WORKERS": "4",
            "DIFFMIG_LOG_JSON": "1",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ConfigManager.from_environment(env_file=tmp_path / ".env").get_diff_config()

        assert config.scope == Scope.CLINICAL_DATUM_VARIANTS_ONLY
        assert config.debug is True
        assert config.workers == 4
        assert config.log_json is True

    def test_false_values(self, tmp_path):
        """Test that non-true strings disable boolean options."""
        with patch.dict(os.environ, {"DIFFMIG_DEBUG": "no"}, clear=True):
            config = ConfigManager.from_environment(env_file=tmp_path / ".env").get_diff_config()

        assert config.debug is False

    def test_env_file(self, tmp_path):
        """Test that a .env file is loaded."""
        env_file = tmp_path / ".env"
        env_file.write_text("DIFFMIG_WORKERS=3\n")

        with patch.dict(os.environ, {}, clear=True):
            config = ConfigManager.from_environment(env_file=env_file).get_diff_config()

        assert config.workers == 3

    def test_overrides_take_precedence(self, tmp_path):
        """Test that explicit overrides win and None overrides are ignored."""
        with patch.dict(os.environ, {"DIFFMIG_WORKERS": "4", "DIFFMIG_DEBUG": "true"}, clear=True):
            manager = ConfigManager.from_environment(env_file=tmp_path / ".env")

        config = manager.get_diff_config(workers=2, debug=None, scope=Scope.CLINICAL_DATUM_VARIANTS_ONLY)

        assert config.workers == 2
        assert config.debug is True
        assert config.scope == Scope.CLINICAL_DATUM_VARIANTS_ONLY

    def test_invalid_scope(self, tmp_path):
        """Test that an unknown scope raises ScopeError."""
        with patch.dict(os.environ, {"DIFFMIG_SCOPE": "everything"}, clear=True):
            manager = ConfigManager.from_environment(env_file=tmp_path / ".env")

        with pytest.raises(ScopeError) as exc_info:
            manager.get_diff_config()

        assert exc_info.value.scope == "everything"


class TestConfigManagerFile:
    """Test loading configuration from a JSON file."""

    def test_from_file(self, tmp_path):
        """Test that a JSON object populates the config."""
        config_file = tmp_path / "diffmig.json"
        config_file.write_text(json.dumps({"scope": "clinical_datum_variants_only", "workers": 2}))

        manager = ConfigManager.from_file(str(config_file))

        config = manager.get_diff_config()

        assert config.workers == 2
        assert config.scope == Scope.CLINICAL_DATUM_VARIANTS_ONLY

    def test_missing_file(self, tmp_path):
        """Test that a missing config file is reported."""
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        """Test that an unreadable config file is reported."""
        config_file = tmp_path / "diffmig.json"
        config_file.write_text("{")

        with pytest.raises(ValueError, match="Invalid JSON"):
            ConfigManager.from_file(str(config_file))

    def test_not_an_object(self, tmp_path):
        """Test that a config file must hold a JSON object."""
        config_file = tmp_path / "diffmig.json"
        config_file.write_text("[]")

        with pytest.raises(ValueError, match="JSON object"):
            ConfigManager.from_file(str(config_file))
