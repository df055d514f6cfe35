"""Configuration Manager for Diff Runs.

This module loads the configuration of one diff run from the environment or
a JSON file and validates it. The resulting DiffConfig is passed explicitly
to the loader, the differ and the pipeline; nothing reads configuration from
module-level state.

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - Type-safe configuration using Pydantic models
    - Fail-fast validation: a bad scope is rejected before any archive is opened
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from diffmig.domain.services.scope_filter import Scope, parse_scope

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


class DiffConfig(BaseModel):
    """Configuration for one diff run.

    Parameters:
        scope: Comparison scope
        debug: Emit verbose diagnostic trace to standard error
        workers: Number of threads for the structural differ (1 = sequential)
        log_json: Format log lines as JSON
    """

    scope: Scope = Field(default=Scope.ALL, description="Comparison scope")
    debug: bool = Field(default=False, description="Verbose diagnostic trace")
    workers: int = Field(default=1, ge=1, description="Structural differ threads")
    log_json: bool = Field(default=False, description="JSON log formatting")

    model_config = ConfigDict(frozen=True)

    @field_validator("scope", mode="before")
    @classmethod
    def validate_scope(cls, v: Any) -> Scope:
        """Accept scope selector strings."""
        return parse_scope(v)


class ConfigManager:
    """Configuration manager for diff runs.

    Example Usage:
        ```python
        config = ConfigManager.from_environment().get_diff_config(debug=True)
        config = ConfigManager.from_file("diffmig.json").get_diff_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        self._config_data = config_data

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - DIFFMIG_SCOPE: all | clinical_datum_variants_only
            - DIFFMIG_DEBUG: Enable debug trace (true/false)
            - DIFFMIG_WORKERS: Structural differ threads
            - DIFFMIG_LOG_JSON: JSON log formatting (true/false)

        Parameters:
            env_file: Optional .env file; defaults to ``.env`` in the working directory

        Returns:
            ConfigManager instance
        """
        env_path = env_file or Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        config_data: Dict[str, Any] = {}
        if os.getenv("DIFFMIG_SCOPE"):
            config_data["scope"] = os.getenv("DIFFMIG_SCOPE")
        if os.getenv("DIFFMIG_DEBUG"):
            config_data["debug"] = os.getenv("DIFFMIG_DEBUG", "").lower() in _TRUE_VALUES
        if os.getenv("DIFFMIG_WORKERS"):
            config_data["workers"] = int(os.getenv("DIFFMIG_WORKERS"))
        if os.getenv("DIFFMIG_LOG_JSON"):
            config_data["log_json"] = os.getenv("DIFFMIG_LOG_JSON", "").lower() in _TRUE_VALUES

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a JSON object")
        return cls(config_data)

    def get_diff_config(self, **overrides: Any) -> DiffConfig:
        """Build the validated DiffConfig.

        Parameters:
            **overrides: Values taking precedence over loaded configuration
                         (None values are ignored, so unset CLI flags do not
                         mask the environment)

        Returns:
            DiffConfig instance

        Raises:
            ScopeError: If the scope selector is not recognized
        """
        data = dict(self._config_data)
        data.update({k: v for k, v in overrides.items() if v is not None})
        if "scope" in data:
            # Raise ScopeError directly instead of a wrapped pydantic error
            data["scope"] = parse_scope(data["scope"])
        return DiffConfig(**data)
