#!/usr/bin/env python3
"""
Background Sync Job

Refreshes the cached dashboard snapshots from Azure DevOps on a fixed
schedule and validates them against the upstream data.

Each cycle, for every configured SyncTarget:
    1. Fetch current-sprint work item counts -> dashboard:workItems:{frontend_id} (5 min)
    2. Fetch sprint dates                    -> dashboard:sprints:{frontend_id}   (30 min)
    3. Validate both snapshots
    4. Record a successful sync

The cycle summary is cached at realtime:lastSyncUpdate (1 hour) and published
to connected dashboards as a `sync_completed` event.

Schedule: every 15 minutes, 8 AM to 6 PM local time, weekdays only (configurable).

Usage:
    job = BackgroundSyncJob(upstream, cache, validation_service, config.get_sync_job_config())
    job.start()
    ...
    await job.stop()
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from dashsync.cache import MemoryCache
from dashsync.collectors.upstream_adapter import UpstreamAdapter
from dashsync.core.errors import ContractViolationError
from dashsync.core.logging_config import get_logger
from dashsync.domain.constants import cache_keys, cache_ttl
from dashsync.domain.realtime import EventKind
from dashsync.realtime.broadcaster import EventBroadcaster
from dashsync.secure_config import SyncJobConfig, SyncTarget
from dashsync.utils.datetime_utils import utc_now
from dashsync.utils.error_handling import log_and_continue
from dashsync.validation.data_validation_service import DataValidationService

logger = get_logger(__name__)

STOP_WAIT_SECONDS = 30


class BackgroundSyncJob:
    """
    Scheduled Azure DevOps to dashboard synchronization.

    Args:
        upstream: Authoritative sprint and work item source
        cache: Cache holding the dashboard snapshots
        validation_service: Validates the snapshots after each project sync
        config: Schedule and projects to sync
        broadcaster: Optional publisher for connected dashboards
        clock: UTC timestamps for results and status
        local_clock: Local wall-clock used for the business-hours window
        sleep: Awaitable sleep used by the scheduler
    """

    def __init__(
        self,
        upstream: UpstreamAdapter,
        cache: MemoryCache,
        validation_service: DataValidationService,
        config: SyncJobConfig | None = None,
        broadcaster: EventBroadcaster | None = None,
        clock: Callable[[], datetime] = utc_now,
        local_clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.upstream = upstream
        self.cache = cache
        self.validation_service = validation_service
        self.config = config or SyncJobConfig()
        self.broadcaster = broadcaster
        self._clock = clock
        self._local_clock = local_clock
        self._sleep = sleep

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.next_run_time: datetime | None = None
        self._task: asyncio.Task[None] | None = None
        self._started_at = time.monotonic()

        self.sync_stats: dict[str, Any] = {
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "average_duration": 0,
            "projects_synced": 0,
        }

    @property
    def schedule(self) -> str:
        start, end = self.config.business_hours
        days = "weekdays" if self.config.weekdays_only else "daily"
        return f"every {self.config.interval_minutes:g} min, {start:02d}:00-{end:02d}:59 {days}"

    def is_within_business_hours(self, moment: datetime) -> bool:
        """True if a scheduled wake-up at `moment` (local time) should sync."""
        if self.config.weekdays_only and moment.weekday() >= 5:
            return False
        start, end = self.config.business_hours
        return start <= moment.hour <= end

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the scheduler task. Calling start() while running is a no-op."""
        if self._task is not None and not self._task.done():
            logger.warning("Background sync job already started")
            return

        self._started_at = time.monotonic()
        self._task = asyncio.create_task(self._schedule_loop(), name="background-sync")
        logger.info(f"Background sync job scheduled: {self.schedule}", extra={"projects": len(self.config.projects)})

    async def _schedule_loop(self) -> None:
        if self.config.run_initial_sync:
            logger.info("Running initial sync...")
            await self._sleep(self.config.initial_sync_delay)
            await self.execute_sync_cycle()

        interval = self.config.interval_minutes * 60
        while True:
            self.next_run_time = self._clock() + timedelta(seconds=interval)
            await self._sleep(interval)

            if self.is_within_business_hours(self._local_clock()):
                await self.execute_sync_cycle()
            else:
                logger.debug("Outside business hours, skipping scheduled sync")

    async def stop(self, timeout: float = STOP_WAIT_SECONDS) -> None:
        """Cancel the schedule and wait up to `timeout` seconds for a running cycle."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            self.next_run_time = None
            logger.info("Background sync job stopped")

        waited = 0.0
        if self.is_running:
            logger.info("Waiting for current sync cycle to complete...")
        while self.is_running and waited < timeout:
            await asyncio.sleep(1)
            waited += 1

        logger.info("Background sync job shutdown completed")

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def execute_sync_cycle(self) -> dict[str, Any] | None:
        """
        Sync every configured project.

        Returns:
            The cycle summary, or None if a cycle was already running or the
            cycle failed
        """
        if self.is_running:
            logger.warning("Sync cycle already in progress, skipping...")
            return None

        start_time = time.perf_counter()
        self.is_running = True
        self.sync_stats["total_runs"] += 1
        logger.info("Starting background sync cycle")

        try:
            results = []
            projects_synced = 0

            # A failing project is recorded and the cycle moves on
            for target in self.config.projects:
                result = await self.sync_project(target)
                results.append(result)
                if result["success"]:
                    projects_synced += 1

            duration_ms = round((time.perf_counter() - start_time) * 1000)
            self._update_sync_stats(True, duration_ms, projects_synced)

            summary = {
                "type": EventKind.SYNC_COMPLETED.value,
                "timestamp": self._clock().isoformat(),
                "results": results,
                "duration": duration_ms,
                "projectsSynced": projects_synced,
            }
            self._broadcast_sync_update(summary)

            logger.info(
                f"Background sync cycle completed ({duration_ms}ms, {projects_synced} projects)",
                extra={"duration_ms": duration_ms, "projects_synced": projects_synced},
            )
            return summary

        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000)
            self._update_sync_stats(False, duration_ms, 0)
            self.sync_stats["last_error"] = str(e)
            logger.error(f"Background sync cycle failed: {e}", exc_info=True)
            self.validation_service.update_sync_stats(success=False)
            return None

        finally:
            self.is_running = False
            self.last_run_time = self._clock()

    async def sync_project(self, target: SyncTarget) -> dict[str, Any]:
        """
        Refresh and validate the snapshots of one dashboard project.

        Never raises; a failure is reported in the returned result.
        """
        logger.info(f"Syncing project: {target.frontend_id}", extra={"project": target.frontend_id})

        try:
            work_items = await self.upstream.get_current_sprint_work_items(target.azure_project, target.team)
            self.cache.set(cache_keys.dashboard_work_items(target.frontend_id), work_items, cache_ttl.WORK_ITEMS)

            sprint_data = await self.upstream.get_accurate_sprint_dates(target.azure_project, target.team)
            sprints = sprint_data.get("sprints") or []
            self.cache.set(cache_keys.dashboard_sprints(target.frontend_id), sprints, cache_ttl.ITERATIONS)

            sprint_verdict = await self.validation_service.validate_sprint_dates(
                target.azure_project, target.team, self.upstream, snapshot_id=target.frontend_id
            )
            count_verdict = await self.validation_service.validate_work_item_counts(
                target.azure_project, target.team, self.upstream, snapshot_id=target.frontend_id
            )

            self.validation_service.update_sync_stats(success=True)

            timestamp = self._clock().isoformat()
            self._publish_project_update(
                EventKind.WORK_ITEM_UPDATED, target, work_items, timestamp, cache_ttl.WORK_ITEMS
            )
            self._publish_project_update(EventKind.SPRINT_UPDATED, target, sprints, timestamp, cache_ttl.ITERATIONS)

            logger.info(
                f"Project {target.frontend_id} synced successfully: "
                f"{work_items.get('total')} work items, {len(sprints)} sprints",
                extra={"project": target.frontend_id},
            )
            return {
                "project": target.frontend_id,
                "success": True,
                "workItems": {"total": work_items.get("total"), "bugs": work_items.get("bugs"), "synced": True},
                "sprints": {"count": len(sprints), "synced": True},
                "validation": {"sprintDates": sprint_verdict.passed, "workItemCounts": count_verdict.passed},
                "timestamp": timestamp,
            }

        except Exception as e:
            logger.error(
                f"Project sync failed for {target.frontend_id}: {e}",
                extra={"project": target.frontend_id, "exception_class": e.__class__.__name__},
            )
            return {
                "project": target.frontend_id,
                "success": False,
                "error": str(e),
                "timestamp": self._clock().isoformat(),
            }

    async def trigger_manual_sync(self, project_filter: str | None = None) -> dict[str, Any] | None:
        """
        Sync one project by its dashboard id, or run a full cycle.

        Raises:
            ContractViolationError: If project_filter names no configured project
        """
        logger.info(f"Manual sync triggered{f' for project: {project_filter}' if project_filter else ''}")

        if project_filter:
            target = next((t for t in self.config.projects if t.frontend_id == project_filter), None)
            if target is None:
                raise ContractViolationError(f"Project not found: {project_filter}")
            return await self.sync_project(target)

        return await self.execute_sync_cycle()

    # ------------------------------------------------------------------
    # Broadcasting and statistics
    # ------------------------------------------------------------------

    def _publish_project_update(
        self, kind: EventKind, target: SyncTarget, data: Any, timestamp: str, ttl: int
    ) -> None:
        """Cache the update for polling clients, then push it."""
        payload = {"projectId": target.frontend_id, "teamId": target.team, "data": data, "timestamp": timestamp}
        self.cache.set(cache_keys.project_update(kind.value, target.frontend_id), payload, ttl)
        self._publish(kind, payload)

    def _publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.publish(kind, payload)
        except Exception as e:
            log_and_continue(logger, e, {"event": kind.value}, "Event publish")

    def _broadcast_sync_update(self, summary: dict[str, Any]) -> None:
        # Broadcast problems never fail the cycle
        try:
            self.cache.set(cache_keys.LAST_SYNC_UPDATE, summary, cache_ttl.LAST_SYNC_UPDATE)
            if self.broadcaster is not None:
                self.broadcaster.publish(EventKind.SYNC_COMPLETED, summary)
            logger.debug(f"Sync update broadcasted: {summary['type']}")
        except Exception as e:
            log_and_continue(logger, e, {"event": summary.get("type")}, "Sync update broadcast")

    def _update_sync_stats(self, success: bool, duration_ms: int, projects_synced: int) -> None:
        if success:
            self.sync_stats["successful_runs"] += 1
        else:
            self.sync_stats["failed_runs"] += 1

        self.sync_stats["projects_synced"] += projects_synced

        # Rolling average over completed runs
        completed = self.sync_stats["successful_runs"] + self.sync_stats["failed_runs"]
        previous = self.sync_stats["average_duration"]
        self.sync_stats["average_duration"] = round((previous * (completed - 1) + duration_ms) / completed)

    def get_status(self) -> dict[str, Any]:
        """Current sync status and statistics for admin monitoring."""
        return {
            "is_running": self.is_running,
            "is_scheduled": self._task is not None and not self._task.done(),
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "next_run_time": self.next_run_time.isoformat() if self.next_run_time else None,
            "schedule": self.schedule,
            "stats": dict(self.sync_stats),
            "projects_to_sync": [t.frontend_id for t in self.config.projects],
            "uptime_seconds": round(time.monotonic() - self._started_at, 3),
        }
