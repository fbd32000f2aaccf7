"""
Core Infrastructure - Logging, Errors, Configuration, Performance Tracking

This package provides centralized infrastructure utilities that should be used
throughout the application instead of direct library calls.

Usage:
    from dashsync.core import get_config, get_logger, setup_logging

    setup_logging(level="INFO")
    logger = get_logger(__name__)
    realtime = get_config().get_realtime_config()
"""

from dashsync.secure_config import (
    AzureDevOpsConfig,
    ConfigurationError,
    PollingConfig,
    RealtimeConfig,
    SecureConfig,
    SyncJobConfig,
    SyncTarget,
    ValidationThresholds,
    get_config,
    validate_config_on_startup,
)

from .errors import (
    ContractViolationError,
    DashSyncError,
    MissingDataError,
    RetriesExhaustedError,
    TransientError,
    ValidationRunError,
)
from .logging_config import get_logger, log_with_context, setup_logging, setup_logging_from_env
from .performance_log import PerformanceLog

__all__ = [
    # Configuration
    "get_config",
    "validate_config_on_startup",
    "ConfigurationError",
    "SecureConfig",
    "AzureDevOpsConfig",
    "RealtimeConfig",
    "PollingConfig",
    "ValidationThresholds",
    "SyncJobConfig",
    "SyncTarget",
    # Logging
    "get_logger",
    "log_with_context",
    "setup_logging",
    "setup_logging_from_env",
    # Errors
    "DashSyncError",
    "TransientError",
    "RetriesExhaustedError",
    "ValidationRunError",
    "MissingDataError",
    "ContractViolationError",
    # Performance
    "PerformanceLog",
]
