"""Unit tests for logging setup."""

import json
import logging
import sys

import pytest

from diffmig.infrastructure.logging_config import StructuredFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test root logger configuration."""

    def test_default_level(self):
        """Test that the default level keeps diagnostics quiet."""
        setup_logging()

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_debug_level(self):
        """Test that debug mode logs at DEBUG regardless of log_level."""
        setup_logging(debug=True, log_level="ERROR")

        assert logging.getLogger().level == logging.DEBUG

    def test_json_formatter(self):
        """Test that JSON mode installs the structured formatter."""
        setup_logging(use_json=True)

        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)


class TestStructuredFormatter:
    """Test JSON log lines."""

    def test_format(self):
        """Test that a record is rendered as one JSON object."""
        record = logging.LogRecord("diffmig.test", logging.INFO, __file__, 10, "loaded %d", (3,), None)

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "diffmig.test"
        assert data["message"] == "loaded 3"
        assert "timestamp" in data
