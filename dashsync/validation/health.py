"""
Health Surface

Read-only projection over the validation service, the background sync job
and (client side) the realtime coordinator. Nothing here is stored; every
call derives a fresh view.
"""

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from dashsync.core.logging_config import get_logger
from dashsync.domain.validation import HealthStatus, HealthSummary
from dashsync.utils.error_handling import log_and_return_default

from .data_validation_service import DataValidationService

if TYPE_CHECKING:
    from dashsync.jobs.background_sync import BackgroundSyncJob
    from dashsync.realtime.coordinator import RealtimeCoordinator

logger = get_logger(__name__)


class HealthSurface:
    """
    Health and statistics view for monitoring endpoints.

    Args:
        validation_service: Source of verdicts, counters and the performance digest
        sync_job: Optional background sync job whose status is included in stats
        coordinator: Optional realtime coordinator whose connection status is included
    """

    def __init__(
        self,
        validation_service: DataValidationService,
        sync_job: "BackgroundSyncJob | None" = None,
        coordinator: "RealtimeCoordinator | None" = None,
    ):
        self.validation_service = validation_service
        self.sync_job = sync_job
        self.coordinator = coordinator
        self._started_at = time.monotonic()

    def summary(self, project_id: str | None = None, team_id: str | None = None) -> HealthSummary:
        """Health summary for a (project, team) pair, or the global one."""
        return self.validation_service.get_last_sync_status(project_id, team_id)

    def is_serving(self, summary: HealthSummary) -> bool:
        """Only a summary that could not be derived makes the service unhealthy."""
        return summary.overall != HealthStatus.ERROR

    def stats(self) -> dict[str, Any]:
        """
        Combined statistics.

        Returns:
            {
                "validation": {...counters, thresholds, uptimeSeconds, memoryUsage},
                "syncJob": {...} | None,
                "realtime": {...} | None,
                "uptimeSeconds": 12.5
            }
        """
        return {
            "validation": self.validation_service.get_validation_stats(),
            "syncJob": self._section("sync job status", self.sync_job.get_status) if self.sync_job else None,
            "realtime": self._section("realtime status", self.coordinator.get_status) if self.coordinator else None,
            "uptimeSeconds": round(time.monotonic() - self._started_at, 3),
        }

    def _section(self, name: str, getter: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        try:
            return getter()
        except Exception as e:
            return log_and_return_default(
                logger, e, context={"section": name}, default_value={"error": str(e)}, error_type=name
            )
