#!/usr/bin/env python3
"""
Tests for Error Handling Utility Module

Tests the three utilities:
1. log_and_continue() - Continue execution after logging
2. log_and_return_default() - Return default value after logging
3. call_isolated() - Invoke a callback without letting it raise
"""

import logging
from unittest.mock import MagicMock

import pytest

from dashsync.utils.error_handling import call_isolated, log_and_continue, log_and_return_default


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing log calls."""
    return MagicMock(spec=logging.Logger)


class TestLogAndContinue:
    """Test suite for log_and_continue() function."""

    def test_logs_at_warning_level(self, mock_logger):
        """Test that log_and_continue logs at WARNING level."""
        log_and_continue(mock_logger, ValueError("boom"), {"component_id": "sprint-card"}, "Subscriber callback")

        mock_logger.warning.assert_called_once()
        message = mock_logger.warning.call_args[0][0]
        assert "Subscriber callback failed" in message
        assert "boom" in message

    def test_includes_structured_context(self, mock_logger):
        """Test that structured context is included in log extra."""
        context = {"endpoint": "/api/metrics/sprints/Product"}

        log_and_continue(mock_logger, ConnectionError("refused"), context, "Poll subscriber")

        extra = mock_logger.warning.call_args[1]["extra"]
        assert extra["error_type"] == "Poll subscriber"
        assert extra["exception_class"] == "ConnectionError"
        assert extra["context"] == context

    def test_default_error_type(self, mock_logger):
        """Test default error_type parameter is 'Operation'."""
        log_and_continue(mock_logger, ValueError("x"), {})

        assert mock_logger.warning.call_args[1]["extra"]["error_type"] == "Operation"


class TestLogAndReturnDefault:
    """Test suite for log_and_return_default() function."""

    def test_returns_default_value(self, mock_logger):
        """Test that it returns the very object passed as default."""
        default: dict = {}

        result = log_and_return_default(mock_logger, ValueError("bad json"), {"event": "message"}, default, "Parse")

        assert result is default

    def test_default_value_none(self, mock_logger):
        """Test default_value defaults to None."""
        assert log_and_return_default(mock_logger, ValueError("error"), {}) is None

    def test_logs_default_in_extra(self, mock_logger):
        log_and_return_default(mock_logger, ValueError("e"), {"timestamp": "soon"}, "raw", "Event timestamp parsing")

        extra = mock_logger.warning.call_args[1]["extra"]
        assert extra["default_value"] == "raw"
        assert extra["error_type"] == "Event timestamp parsing"


class TestCallIsolated:
    """Test suite for call_isolated() function."""

    def test_passes_arguments_and_reports_success(self, mock_logger):
        seen = []

        ok = call_isolated(mock_logger, lambda *args: seen.append(args), "open", {"connected": True}, context={})

        assert ok is True
        assert seen == [("open", {"connected": True})]
        mock_logger.warning.assert_not_called()

    def test_failure_is_logged_not_raised(self, mock_logger):
        def callback(delivery):
            raise KeyError("missing")

        ok = call_isolated(
            mock_logger, callback, "delivery", context={"component_id": "sprint-card"}, error_type="Subscriber callback"
        )

        assert ok is False
        extra = mock_logger.warning.call_args[1]["extra"]
        assert extra["error_type"] == "Subscriber callback"
        assert extra["exception_class"] == "KeyError"
        assert extra["context"] == {"component_id": "sprint-card"}

    def test_base_exceptions_propagate(self, mock_logger):
        def callback():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            call_isolated(mock_logger, callback, context={})
