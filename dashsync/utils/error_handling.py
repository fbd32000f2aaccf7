"""
Error Handling Utility Module

Structured logging for failures that must not propagate:

1. log_and_continue() - log a swallowed failure and move on
2. log_and_return_default() - log a failed read and substitute a default
3. call_isolated() - invoke a subscriber or listener callback so that its
   failure cannot reach the caller

Transports and the coordinator fan events out to code they do not own; every
such call goes through call_isolated().
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


def _error_extra(error: Exception, error_type: str, context: dict[str, Any]) -> dict[str, Any]:
    return {
        "error_type": error_type,
        "exception_class": error.__class__.__name__,
        "context": context,
    }


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> None:
    """
    Log a failure at WARNING with structured context.

    Args:
        logger: Logger instance from get_logger(__name__)
        error: The caught exception
        context: What failed (component_id, endpoint, url, ...)
        error_type: Human-readable name of the operation

    Example:
        try:
            self.broadcaster.publish(kind, payload)
        except Exception as e:
            log_and_continue(logger, e, {"event": kind.value}, "Event publish")
    """
    logger.warning(f"{error_type} failed: {error}", extra=_error_extra(error, error_type, context))


def log_and_return_default(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    default_value: T = None,  # type: ignore[assignment]
    error_type: str = "Operation",
) -> T:
    """
    Log a failed read and return `default_value` in its place.

    Example:
        try:
            parsed = parse_iso_timestamp(raw)
        except ValueError as e:
            parsed = log_and_return_default(logger, e, {"timestamp": raw}, None, "Event timestamp parsing")
    """
    extra = _error_extra(error, error_type, context)
    extra["default_value"] = str(default_value)
    logger.warning(f"{error_type} failed, returning default value: {error}", extra=extra)
    return default_value


def call_isolated(
    logger: logging.Logger,
    callback: Callable[..., Any],
    *args: Any,
    context: dict[str, Any],
    error_type: str = "Callback",
) -> bool:
    """
    Call `callback(*args)`, logging instead of raising if it fails.

    Returns:
        True if the callback returned normally
    """
    try:
        callback(*args)
    except Exception as e:
        log_and_continue(logger, e, context, error_type)
        return False
    return True
