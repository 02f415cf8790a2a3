"""Tests for structlog setup."""

import logging
from unittest.mock import patch

import pytest
import structlog

from reposync.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.reset_defaults()
    logging.getLogger("reposync").setLevel(logging.NOTSET)


class TestSetupLogging:
    def test_level_argument_wins(self):
        with patch.dict("os.environ", {"REPOSYNC_LOG_LEVEL": "ERROR"}):
            setup_logging("debug")
        assert logging.getLogger("reposync").level == logging.DEBUG

    def test_level_from_env(self):
        with patch.dict("os.environ", {"REPOSYNC_LOG_LEVEL": "warning"}):
            setup_logging()
        assert logging.getLogger("reposync").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_format_uses_stdlib_factory(self):
        with patch.dict("os.environ", {"REPOSYNC_LOG_FORMAT": "json"}):
            setup_logging()
        assert structlog.is_configured()
        assert structlog.get_config()["wrapper_class"] is structlog.stdlib.BoundLogger
