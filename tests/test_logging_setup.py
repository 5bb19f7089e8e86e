"""Tests for log configuration."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from aqueduct.logging_setup import JSONFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:
    def test_fields(self):
        record = logging.LogRecord("aqueduct.worker", logging.INFO, __file__, 1, "Found %d new events", (3,), None)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "aqueduct.worker"
        assert entry["message"] == "Found 3 new events"
        assert "exception" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestSetupLogging:
    def test_single_json_handler(self, restore_root_logger):
        setup_logging("DEBUG", json_lines=True)
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_plain_text_and_unknown_level(self, restore_root_logger):
        setup_logging("loud", json_lines=False)
        assert not isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
        assert restore_root_logger.level == logging.INFO
