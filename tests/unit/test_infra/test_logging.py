"""Unit tests for structured logging."""
from __future__ import annotations

import json
import logging
import sys

import pytest

from thread_sync.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    clear_log_context,
    configure_logging,
    get_log_context,
    remove_from_log_context,
    set_log_context,
)
from thread_sync.infra.logging.config import shutdown


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("thread_sync.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.mark.unit
class TestLogContext:
    """Test suite for contextvars-backed log context."""

    def test_set_get_remove(self):
        set_log_context(viewer_id="u1", thread_id=7)
        remove_from_log_context("thread_id")

        assert get_log_context() == {"viewer_id": "u1"}

    def test_filter_injects_without_overwriting(self):
        set_log_context(viewer_id="u1", operation="ctx")
        record = _record(operation="explicit")

        assert ContextInjectingFilter().filter(record) is True
        assert record.viewer_id == "u1"
        assert record.operation == "explicit"


@pytest.mark.unit
class TestJSONFormatter:
    """Test suite for JSONFormatter."""

    def test_basic_fields(self):
        formatter = JSONFormatter(static={"service": "thread-sync"})

        data = json.loads(formatter.format(_record("Cache entry invalidated", cache_key="inbox:u1")))

        assert data["level"] == "INFO"
        assert data["logger"] == "thread_sync.test"
        assert data["message"] == "Cache entry invalidated"
        assert data["service"] == "thread-sync"
        assert data["cache_key"] == "inbox:u1"
        assert data["timestamp"].endswith("Z")
        assert "trace_id" not in data

    def test_exception_on_single_line(self):
        formatter = JSONFormatter()
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record("failed")
            record.exc_info = sys.exc_info()

        output = formatter.format(record)

        assert "\n" not in output
        assert "RuntimeError: boom" in json.loads(output)["exception"]


@pytest.mark.unit
class TestConfigureLogging:
    """Test suite for configure_logging."""

    @pytest.fixture
    def restore_root(self):
        root = logging.getLogger()
        level, handlers, filters = root.level, list(root.handlers), list(root.filters)
        yield
        shutdown()
        root.setLevel(level)
        root.handlers[:] = handlers
        root.filters[:] = filters

    def test_json_file_output_carries_context(self, tmp_path, restore_root):
        log_file = tmp_path / "logs" / "sync.log"
        configure_logging(
            log_level="DEBUG",
            file_path=log_file,
            console_enabled=False,
            capture_warnings=False,
            service_name="sync-test",
        )

        set_log_context(viewer_id="u1")
        logging.getLogger("thread_sync.features.threads.read_state").info(
            "Read commit confirmed", extra={"thread_id": 3}
        )
        shutdown()

        lines = log_file.read_text().splitlines()
        data = json.loads(lines[-1])
        assert data["message"] == "Read commit confirmed"
        assert data["service"] == "sync-test"
        assert data["viewer_id"] == "u1"
        assert data["thread_id"] == 3

    def test_level_filters_records(self, tmp_path, restore_root):
        log_file = tmp_path / "sync.log"
        configure_logging(
            log_level="WARNING",
            file_path=log_file,
            console_enabled=False,
            capture_warnings=False,
        )

        logging.getLogger("thread_sync.test").info("dropped")
        logging.getLogger("thread_sync.test").warning("kept")
        shutdown()

        messages = [json.loads(line)["message"] for line in log_file.read_text().splitlines()]
        assert "dropped" not in messages
        assert "kept" in messages
