"""
Secure Configuration Management

Centralized, validated configuration for the sync service and the realtime
client. Replaces scattered os.getenv() calls with strict validation and
fail-fast behavior.

Usage:
    from dashsync.secure_config import get_config

    config = get_config()
    realtime = config.get_realtime_config()
    print(realtime.server_url)

Security Features:
    - Strict validation of all configuration values
    - Fail-fast on missing/invalid configuration
    - No default values for credentials
    - Placeholder detection (e.g., "your_pat_here")
    - HTTPS enforcement for Azure DevOps URLs

Raises:
    ConfigurationError: If configuration is missing or invalid
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


@dataclass
class AzureDevOpsConfig:
    """
    Validated Azure DevOps configuration.
    """
    organization_url: str
    pat: str
    project: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate Azure DevOps configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.organization_url:
            raise ConfigurationError("ADO_ORGANIZATION_URL is required")

        if not self.organization_url.startswith('https://'):
            raise ConfigurationError(
                f"ADO_ORGANIZATION_URL must use HTTPS: {self.organization_url}"
            )

        if not ('dev.azure.com' in self.organization_url or 'visualstudio.com' in self.organization_url):
            raise ConfigurationError(
                f"ADO_ORGANIZATION_URL must be a valid Azure DevOps URL: {self.organization_url}"
            )

        if not self.pat:
            raise ConfigurationError("ADO_PAT is required")

        if len(self.pat) < 20:
            raise ConfigurationError(
                f"ADO_PAT appears invalid (too short: {len(self.pat)} chars, expected >=20)"
            )

        placeholders = ['your_pat', 'your_token', 'example', 'placeholder', 'xxx', 'replace_me']
        if any(placeholder in self.pat.lower() for placeholder in placeholders):
            raise ConfigurationError(
                "ADO_PAT contains a placeholder value - please set a real Personal Access Token"
            )

        if self.project:
            if not re.match(r'^[a-zA-Z0-9 _\-\.]+$', self.project):
                raise ConfigurationError(
                    f"ADO_PROJECT contains invalid characters: {self.project}"
                )


@dataclass
class RealtimeConfig:
    """
    Push transport and coordinator settings (seconds).

    `push_enabled=False` is the permanent offline-mode toggle: the coordinator
    goes straight to polling and never opens the event stream.
    """
    server_url: str = "http://localhost:8000"
    sse_endpoint: str = "/api/sse/dashboard"
    push_enabled: bool = True
    pull_enabled: bool = True
    open_timeout: float = 10.0
    grace_period: float = 5.0
    heartbeat_timeout: float = 60.0
    heartbeat_check_interval: float = 30.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    max_reconnect_attempts: int = 5

    def __post_init__(self):
        self._validate()

    @property
    def stream_url(self) -> str:
        return f"{self.server_url.rstrip('/')}{self.sse_endpoint}"

    def _validate(self):
        if not self.server_url.startswith(('http://', 'https://')):
            raise ConfigurationError(
                f"DASHBOARD_SERVER_URL must be an http(s) URL: {self.server_url}"
            )

        if not self.sse_endpoint.startswith('/'):
            raise ConfigurationError(f"SSE endpoint must start with '/': {self.sse_endpoint}")

        for name in ('open_timeout', 'grace_period', 'heartbeat_timeout',
                     'heartbeat_check_interval', 'reconnect_base_delay', 'reconnect_max_delay'):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"Realtime {name} must be positive")

        if self.reconnect_max_delay < self.reconnect_base_delay:
            raise ConfigurationError("reconnect_max_delay must be >= reconnect_base_delay")

        if self.max_reconnect_attempts < 1:
            raise ConfigurationError("max_reconnect_attempts must be at least 1")


@dataclass
class PollingConfig:
    """
    Pull transport settings (seconds).
    """
    default_interval: float = 30.0
    min_interval: float = 5.0
    max_error_interval: float = 300.0
    max_retries: int = 10
    request_timeout: float = 10.0

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if self.min_interval <= 0:
            raise ConfigurationError("Polling min_interval must be positive")

        if self.default_interval < self.min_interval:
            raise ConfigurationError(
                f"Polling default_interval ({self.default_interval}s) is below min_interval ({self.min_interval}s)"
            )

        if self.max_error_interval < self.min_interval:
            raise ConfigurationError("Polling max_error_interval must be >= min_interval")

        if self.max_retries < 1:
            raise ConfigurationError("Polling max_retries must be at least 1")

        if self.request_timeout <= 0:
            raise ConfigurationError("Polling request_timeout must be positive")


@dataclass
class ValidationThresholds:
    """
    Tunable thresholds for the data validation service.
    """
    max_date_discrepancy_days: int = 1
    max_work_item_count_delta: int = 5
    sync_frequency_minutes: int = 15
    alert_threshold_hours: float = 2
    performance_sample_cap: int = 100

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if self.max_date_discrepancy_days < 0:
            raise ConfigurationError("max_date_discrepancy_days cannot be negative")

        if self.max_work_item_count_delta < 0:
            raise ConfigurationError("max_work_item_count_delta cannot be negative")

        if self.alert_threshold_hours <= 0:
            raise ConfigurationError("alert_threshold_hours must be positive")

        if self.performance_sample_cap < 1:
            raise ConfigurationError("performance_sample_cap must be at least 1")

    def to_dict(self) -> dict:
        return {
            "maxDateDiscrepancyDays": self.max_date_discrepancy_days,
            "maxWorkItemCountDelta": self.max_work_item_count_delta,
            "syncFrequencyMinutes": self.sync_frequency_minutes,
            "alertThresholdHours": self.alert_threshold_hours,
            "performanceSampleCap": self.performance_sample_cap,
        }


@dataclass(frozen=True)
class SyncTarget:
    """
    A dashboard project and the upstream (project, team) it is synced from.
    """
    frontend_id: str
    azure_project: str
    team: str


DEFAULT_SYNC_TARGETS = (
    SyncTarget("Product - Partner Management Platform", "Product", "PMP Developer Team"),
    SyncTarget("Product - Data as a Service", "Product", "Data Team"),
)


@dataclass
class SyncJobConfig:
    """
    Background sync schedule.

    The job wakes every `interval_minutes` and only syncs within
    `business_hours` (inclusive start and end hour, local time), on weekdays
    unless `weekdays_only` is False.
    """
    interval_minutes: float = 15
    business_hours: tuple[int, int] = (8, 18)
    weekdays_only: bool = True
    run_initial_sync: bool = False
    initial_sync_delay: float = 5.0
    projects: tuple[SyncTarget, ...] = field(default_factory=lambda: DEFAULT_SYNC_TARGETS)

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if self.interval_minutes <= 0:
            raise ConfigurationError("Sync interval_minutes must be positive")

        start, end = self.business_hours
        if not (0 <= start <= 23 and 0 <= end <= 23 and start <= end):
            raise ConfigurationError(f"Invalid business_hours: {self.business_hours}")

        frontend_ids = [p.frontend_id for p in self.projects]
        if len(frontend_ids) != len(set(frontend_ids)):
            raise ConfigurationError("SYNC_PROJECTS contains duplicate dashboard project ids")


def parse_sync_targets(raw: str) -> tuple[SyncTarget, ...]:
    """
    Parse `frontendId|azureProject|team;...` into SyncTargets.

    Raises:
        ConfigurationError: If an entry does not have exactly three fields
    """
    targets = []
    for chunk in raw.split(';'):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [part.strip() for part in chunk.split('|')]
        if len(parts) != 3 or not all(parts):
            raise ConfigurationError(
                f"SYNC_PROJECTS entry must be 'frontendId|azureProject|team': {chunk!r}"
            )
        targets.append(SyncTarget(*parts))
    return tuple(targets)


class SecureConfig:
    """
    Centralized secure configuration manager.

    Loads and validates all application configuration from environment variables.
    Provides fail-fast behavior to catch configuration issues early.
    """

    def __init__(self):
        """Initialize configuration (loads .env file)."""
        load_dotenv()

    def get_ado_config(self, project: Optional[str] = None) -> AzureDevOpsConfig:
        """
        Get validated Azure DevOps configuration.

        Args:
            project: Optional project name (overrides ADO_PROJECT env var)

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        organization_url = os.getenv('ADO_ORGANIZATION_URL')
        pat = os.getenv('ADO_PAT')
        project = project or os.getenv('ADO_PROJECT')

        return AzureDevOpsConfig(
            organization_url=organization_url or '',
            pat=pat or '',
            project=project
        )

    def get_realtime_config(self) -> RealtimeConfig:
        """
        Get validated realtime client configuration.

        DASHBOARD_OFFLINE_MODE=true disables the push transport permanently.
        """
        return RealtimeConfig(
            server_url=os.getenv('DASHBOARD_SERVER_URL', 'http://localhost:8000'),
            sse_endpoint=os.getenv('DASHBOARD_SSE_ENDPOINT', '/api/sse/dashboard'),
            push_enabled=not _env_bool('DASHBOARD_OFFLINE_MODE', False),
            pull_enabled=_env_bool('DASHBOARD_POLLING_ENABLED', True),
            open_timeout=_env_float('SSE_OPEN_TIMEOUT_SECONDS', 10.0),
            grace_period=_env_float('SSE_GRACE_PERIOD_SECONDS', 5.0),
            heartbeat_timeout=_env_float('SSE_HEARTBEAT_TIMEOUT_SECONDS', 60.0),
        )

    def get_polling_config(self) -> PollingConfig:
        """Get validated polling configuration."""
        return PollingConfig(
            default_interval=_env_float('POLLING_INTERVAL_SECONDS', 30.0),
            request_timeout=_env_float('POLLING_TIMEOUT_SECONDS', 10.0),
        )

    def get_validation_thresholds(self) -> ValidationThresholds:
        """Get validated data validation thresholds."""
        return ValidationThresholds(
            max_date_discrepancy_days=int(_env_float('VALIDATION_MAX_DATE_DISCREPANCY_DAYS', 1)),
            max_work_item_count_delta=int(_env_float('VALIDATION_MAX_WORK_ITEM_COUNT_DELTA', 5)),
            alert_threshold_hours=_env_float('VALIDATION_ALERT_THRESHOLD_HOURS', 2),
        )

    def get_sync_job_config(self) -> SyncJobConfig:
        """
        Get validated background sync configuration.

        SYNC_PROJECTS overrides the default project list.
        """
        raw_projects = os.getenv('SYNC_PROJECTS')
        projects = parse_sync_targets(raw_projects) if raw_projects else DEFAULT_SYNC_TARGETS

        return SyncJobConfig(
            interval_minutes=_env_float('SYNC_INTERVAL_MINUTES', 15),
            weekdays_only=_env_bool('SYNC_WEEKDAYS_ONLY', True),
            run_initial_sync=_env_bool('RUN_INITIAL_SYNC', False),
            projects=projects,
        )


# Convenience function for getting configuration
_config_instance = None

def get_config() -> SecureConfig:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        SecureConfig: The configuration manager
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecureConfig()
    return _config_instance


def validate_config_on_startup(required_services: list[str]) -> None:
    """
    Validate required configuration at application startup.

    Args:
        required_services: Sections to validate ('ado', 'realtime', 'polling', 'validation', 'sync')

    Raises:
        ConfigurationError: If any required configuration is missing or invalid
        ValueError: If an unknown section is requested

    Example:
        validate_config_on_startup(['ado', 'sync'])
    """
    config = get_config()

    for service in required_services:
        if service == 'ado':
            config.get_ado_config()
        elif service == 'realtime':
            config.get_realtime_config()
        elif service == 'polling':
            config.get_polling_config()
        elif service == 'validation':
            config.get_validation_thresholds()
        elif service == 'sync':
            config.get_sync_job_config()
        else:
            raise ValueError(f"Unknown service: {service}")
