"""
Tests for structured logging configuration
"""

import json
import logging

import pytest

from dashsync.core.logging_config import (
    ContextFormatter,
    JSONFormatter,
    RequestContextFilter,
    get_logger,
    log_with_context,
    request_id_var,
    setup_logging,
    setup_logging_from_env,
)


def make_record(message="Push transport open", **attrs):
    record = logging.LogRecord(
        name="dashsync.realtime.push_transport",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:
    def test_formats_core_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "dashsync.realtime.push_transport"
        assert data["message"] == "Push transport open"
        assert data["timestamp"].endswith("Z")

    def test_merges_extra_fields(self):
        record = make_record(extra_fields={"url": "http://localhost:8000/api/sse/dashboard", "attempt": 2})

        data = json.loads(JSONFormatter().format(record))

        assert data["url"] == "http://localhost:8000/api/sse/dashboard"
        assert data["attempt"] == 2

    def test_includes_plain_extra_keys(self):
        record = make_record(project="Product", duration_ms=12.5)

        data = json.loads(JSONFormatter().format(record))

        assert data["project"] == "Product"
        assert data["duration_ms"] == 12.5
        assert "args" not in data

    def test_request_id_from_filter(self):
        record = make_record()
        token = request_id_var.set("req-42")
        try:
            RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert json.loads(JSONFormatter().format(record))["request_id"] == "req-42"


class TestContextFormatter:
    def test_appends_context_suffix(self):
        formatter = ContextFormatter(use_color=False)

        line = formatter.format(make_record("Sync cycle completed", projects_synced=2))

        assert line.endswith("Sync cycle completed [projects_synced=2]")
        assert "| INFO     |" in line

    def test_plain_message_has_no_suffix(self):
        line = ContextFormatter(use_color=False).format(make_record("Polling stopped"))

        assert line.endswith("Polling stopped")

    def test_colour_does_not_leak_into_record(self):
        record = make_record()

        ContextFormatter(use_color=True).format(record)

        assert record.levelname == "INFO"


class TestSetupLogging:
    def test_sets_level_and_quiets_http_stack(self, restore_root_logger):
        setup_logging(level="DEBUG")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_output_is_json(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "dashsync.log"

        setup_logging(level="INFO", log_file=log_file)
        get_logger("dashsync.test").info("Sync cycle completed")
        for handler in restore_root_logger.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["message"] == "Sync cycle completed"

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging(level="chatty")

        assert restore_root_logger.level == logging.INFO


class TestLogWithContext:
    def test_passes_context_as_extra_fields(self):
        logger = logging.getLogger("dashsync.test.context")
        records = []

        class Capture(logging.Handler):
            def emit(self, record):
                records.append(record)

        handler = Capture()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            log_with_context(logger, "info", "Validation completed", project_id="Product", discrepancies=2)
        finally:
            logger.removeHandler(handler)

        assert records[0].extra_fields == {"project_id": "Product", "discrepancies": 2}


class TestSetupFromEnvironment:
    def test_json_format_and_level(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.delenv("LOG_FILE", raising=False)

        setup_logging_from_env()

        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)

    def test_log_file(self, restore_root_logger, monkeypatch, tmp_path):
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "dashsync.log"))
        monkeypatch.delenv("LOG_FORMAT", raising=False)

        setup_logging_from_env()

        assert len(restore_root_logger.handlers) == 2
        assert isinstance(restore_root_logger.handlers[0].formatter, ContextFormatter)
