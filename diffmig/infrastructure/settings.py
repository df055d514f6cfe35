"""Application Settings.

This module provides application-wide metadata and defaults that do not
change between diff runs. Per-run options live in DiffConfig.
"""

import os

from diffmig import __version__

# Application metadata
APP_NAME = "diffmig"
APP_VERSION = __version__
APP_DESCRIPTION = "Find differences between two registry migrations of the same data"

# Exit codes distinguish "found differences" from "tool failed"
EXIT_NO_DIFFERENCES = 0
EXIT_DIFFERENCES_FOUND = 1
EXIT_ERROR = 2

DEFAULT_LOG_LEVEL = "WARNING"


class Settings:
    """Application settings loaded from the environment.

    Instantiated by the entry point and passed down; there is no global
    settings instance.
    """

    def __init__(self):
        """Initialize settings from environment."""
        self.app_name = os.getenv("DIFFMIG_APP_NAME", APP_NAME)
        self.app_version = APP_VERSION
        self.log_level = os.getenv("DIFFMIG_LOG_LEVEL", DEFAULT_LOG_LEVEL)

    def version_string(self) -> str:
        return f"{self.app_name} {self.app_version}"
