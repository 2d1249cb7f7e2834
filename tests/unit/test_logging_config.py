"""
Unit tests for setup_logging.
"""

import logging

import json_log_formatter
import pytest

from otstore.config import StoreSettings
from otstore.logging_config import setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        """Put the root logger back the way pytest configured it."""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        """json format installs the JSON formatter."""
        setup_logging(StoreSettings(log_format="json", log_level="DEBUG"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        """text format installs a plain formatter."""
        setup_logging(StoreSettings(log_format="text", log_level="warning"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger("asyncpg").level == logging.WARNING
