"""
Centralized logging configuration with structured JSON output.

Provides:
- One JSON object per line for the sync service in production
- Colourised single-line console output for development
- Every `extra={...}` field carried into the output (JSON keys, or a
  `key=value` suffix on the console)
- Request correlation: records logged while an API request is handled carry
  its X-Request-ID (set by RequestIDMiddleware)
- Environment-driven setup: LOG_LEVEL, LOG_FORMAT=json|console, LOG_FILE

Usage:
    from dashsync.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Push transport open", extra={"url": stream_url, "attempt": 1})
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "uvicorn.access")

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Attributes every LogRecord has; anything else came in through `extra`
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "request_id",
    "extra_fields",
}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to a record via `extra=` or log_with_context()."""
    context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRIBUTES and not k.startswith("_")}
    context.update(getattr(record, "extra_fields", None) or {})
    return context


class RequestContextFilter(logging.Filter):
    """Stamp each record with the request ID of the API call being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            log_data["request_id"] = request_id

        log_data.update(record_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """
    Human-readable formatter for console output.

    Level names are colour-coded on a terminal; extra fields follow the
    message as `key=value` pairs.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str = CONSOLE_FORMAT, datefmt: str = "%Y-%m-%d %H:%M:%S", use_color: bool | None = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = sys.stderr.isatty() if use_color is None else use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_color:
            record.levelname = f"{self.COLORS.get(levelname, '')}{levelname}{self.RESET}"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        context = record_context(record)
        request_id = getattr(record, "request_id", None)
        if request_id:
            context = {"request_id": request_id, **context}
        if not context:
            return line

        suffix = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{suffix}]{sep}{tail}"


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    json_output: bool = False,
) -> None:
    """
    Configure application-wide logging.

    Replaces any handlers already on the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Optional file path for log output (always JSON)
        json_output: If True, use JSON on the console too

    Example:
        setup_logging(level="DEBUG")
        setup_logging(level="INFO", log_file=Path(".tmp/logs/dashsync.log"), json_output=True)
    """
    log_level = getattr(logging, level.upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    request_filter = RequestContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter() if json_output else ContextFormatter())
    console_handler.addFilter(request_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(request_filter)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_env() -> None:
    """setup_logging() driven by LOG_LEVEL, LOG_FORMAT (json|console) and LOG_FILE."""
    log_file = os.getenv("LOG_FILE")
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=Path(log_file) if log_file else None,
        json_output=os.getenv("LOG_FORMAT", "console").strip().lower() == "json",
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the specified module (pass __name__)."""
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """
    Log message with additional context fields.

    Example:
        log_with_context(logger, "info", "Validation completed", project_id="Product", discrepancies=2)
    """
    log_func = getattr(logger, level.lower())
    log_func(message, extra={"extra_fields": context})
