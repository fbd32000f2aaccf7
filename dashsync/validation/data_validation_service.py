#!/usr/bin/env python3
"""
Data Validation Service

Compares cached dashboard data against authoritative Azure DevOps data and
records the outcome of each comparison as a ValidationVerdict.

Validations:
    - validate_sprint_dates: every upstream sprint must be present on the
      dashboard with start/end dates within `max_date_discrepancy_days`
    - validate_work_item_counts: total/bugs/stories/tasks must differ by at
      most `max_work_item_count_delta`

Verdicts are cached with kind-specific TTLs (sprint dates 30 min, work item
counts 5 min) and read back by the health surface.

Usage:
    service = DataValidationService(cache)
    verdict = await service.validate_sprint_dates("Product", "PMP Developer Team", upstream)
    summary = service.get_last_sync_status()
"""

import sys
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from dashsync.cache import MemoryCache
from dashsync.collectors.upstream_adapter import UpstreamAdapter
from dashsync.core.errors import MissingDataError, ValidationRunError
from dashsync.core.logging_config import get_logger
from dashsync.core.performance_log import PerformanceLog
from dashsync.domain.constants import cache_keys, cache_ttl, work_item_categories
from dashsync.domain.validation import (
    Discrepancy,
    DiscrepancyKind,
    HealthStatus,
    HealthSummary,
    ValidationKind,
    ValidationVerdict,
)
from dashsync.secure_config import ValidationThresholds
from dashsync.utils.datetime_utils import day_difference, hours_since, utc_now

logger = get_logger(__name__)


def _memory_usage() -> dict[str, int]:
    """Peak resident set size of this process, in bytes (empty where unsupported)."""
    if sys.platform == "win32":
        return {}
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports kilobytes, macOS bytes
    return {"maxRss": peak if sys.platform == "darwin" else peak * 1024}


class DataValidationService:
    """
    Validation runs, sync statistics and the derived health summary.

    Counters (`sprintDateValidations`, `workItemValidations`, `validationPassed`,
    `validationFailed`, `errors`) only ever increase during the process lifetime.

    Args:
        cache: Shared cache holding dashboard snapshots and verdicts
        thresholds: Discrepancy and staleness thresholds
        clock: Wall-clock source (injectable for tests)
        performance_log: Bounded operation log (defaults to one sized by thresholds)
    """

    def __init__(
        self,
        cache: MemoryCache,
        thresholds: ValidationThresholds | None = None,
        clock: Callable[[], datetime] = utc_now,
        performance_log: PerformanceLog | None = None,
    ):
        self.cache = cache
        self.thresholds = thresholds or ValidationThresholds()
        self._clock = clock
        self.performance_log = performance_log or PerformanceLog(
            max_size=self.thresholds.performance_sample_cap, clock=clock
        )
        self._started_at = time.monotonic()

        self.stats: dict[str, Any] = {
            "sprintDateValidations": 0,
            "workItemValidations": 0,
            "validationPassed": 0,
            "validationFailed": 0,
            "lastSyncAttempt": None,
            "lastSyncSuccess": None,
            "errors": 0,
        }

    # ------------------------------------------------------------------
    # Sprint dates
    # ------------------------------------------------------------------

    async def validate_sprint_dates(
        self, project_id: str, team_id: str, upstream: UpstreamAdapter, snapshot_id: str | None = None
    ) -> ValidationVerdict:
        """
        Compare upstream sprint dates with the cached dashboard sprints.

        The dashboard snapshot is read from `dashboard:sprints:{snapshot_id}`,
        where snapshot_id defaults to project_id.

        Raises:
            MissingDataError: If the upstream sprint list or the dashboard snapshot is absent
            ValidationRunError: If the upstream call fails
        """
        logger.info(
            f"Validating sprint dates for project: {project_id}, team: {team_id}",
            extra={"project_id": project_id, "team_id": team_id},
        )

        with self._instrumented("validateSprintDates", project_id, team_id) as ctx:
            upstream_data = await upstream.get_accurate_sprint_dates(project_id, team_id)
            dashboard_sprints = self.cache.get(cache_keys.dashboard_sprints(snapshot_id or project_id))

            upstream_sprints = upstream_data.get("sprints") if isinstance(upstream_data, dict) else None
            if dashboard_sprints is None or upstream_sprints is None:
                raise MissingDataError("Missing sprint data for validation")

            discrepancies: list[Discrepancy] = []
            validated = 0
            limit = self.thresholds.max_date_discrepancy_days

            for sprint in upstream_sprints:
                expected = {"startDate": sprint.get("startDate"), "endDate": sprint.get("endDate")}
                counterpart = self._find_sprint(dashboard_sprints, sprint)

                if counterpart is None:
                    discrepancies.append(
                        Discrepancy(
                            entity_ref=str(sprint.get("name") or sprint.get("id")),
                            issue_kind=DiscrepancyKind.SPRINT_MISSING_FROM_DASHBOARD,
                            expected=expected,
                            observed=None,
                        )
                    )
                    continue

                start_diff = day_difference(sprint.get("startDate"), counterpart.get("startDate"))
                end_diff = day_difference(sprint.get("endDate"), counterpart.get("endDate"))
                drifts = [abs(d) for d in (start_diff, end_diff) if d is not None]

                if drifts and max(drifts) > limit:
                    discrepancies.append(
                        Discrepancy(
                            entity_ref=str(sprint.get("name") or sprint.get("id")),
                            issue_kind=DiscrepancyKind.DATE_DRIFT_EXCEEDS_THRESHOLD,
                            expected=expected,
                            observed={
                                "startDate": counterpart.get("startDate"),
                                "endDate": counterpart.get("endDate"),
                            },
                            magnitude=max(drifts),
                            details={"startDateDifference": start_diff, "endDateDifference": end_diff},
                        )
                    )
                validated += 1

            verdict = ValidationVerdict(
                timestamp=self._clock(),
                project_id=project_id,
                team_id=team_id,
                kind=ValidationKind.SPRINT_DATES,
                passed=not discrepancies,
                discrepancies=tuple(discrepancies),
                totals={"totalSprints": len(upstream_sprints), "validatedSprints": validated},
            )
            self.cache.set(
                cache_keys.sprint_dates_verdict(project_id, team_id), verdict, cache_ttl.SPRINT_DATES_VERDICT
            )
            self._record_verdict("sprintDateValidations", verdict)
            ctx["success"] = verdict.passed

        return verdict

    @staticmethod
    def _find_sprint(dashboard_sprints: list[dict[str, Any]], sprint: dict[str, Any]) -> dict[str, Any] | None:
        """Locate the dashboard counterpart of an upstream sprint by name or id."""
        name, sprint_id = sprint.get("name"), sprint.get("id")
        for candidate in dashboard_sprints:
            if name is not None and candidate.get("name") == name:
                return candidate
            if sprint_id is not None and candidate.get("id") == sprint_id:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Work item counts
    # ------------------------------------------------------------------

    async def validate_work_item_counts(
        self, project_id: str, team_id: str, upstream: UpstreamAdapter, snapshot_id: str | None = None
    ) -> ValidationVerdict:
        """
        Compare upstream current-sprint work item counts with the cached
        dashboard counts at `dashboard:workItems:{snapshot_id or project_id}`.
        Missing dashboard categories count as 0.

        Raises:
            MissingDataError: If the upstream counts or the dashboard snapshot is absent
            ValidationRunError: If the upstream call fails
        """
        logger.info(
            f"Validating work item counts for project: {project_id}, team: {team_id}",
            extra={"project_id": project_id, "team_id": team_id},
        )

        with self._instrumented("validateWorkItemCounts", project_id, team_id) as ctx:
            upstream_counts = await upstream.get_current_sprint_work_items(project_id, team_id)
            dashboard_counts = self.cache.get(cache_keys.dashboard_work_items(snapshot_id or project_id))

            if dashboard_counts is None or upstream_counts is None:
                raise MissingDataError("Missing work item data for validation")

            expected = {c: upstream_counts.get(c) or 0 for c in work_item_categories.ALL}
            observed = {c: dashboard_counts.get(c) or 0 for c in work_item_categories.ALL}
            limit = self.thresholds.max_work_item_count_delta

            discrepancies = [
                Discrepancy(
                    entity_ref=category,
                    issue_kind=DiscrepancyKind.WORK_ITEM_COUNT_EXCEEDS_THRESHOLD,
                    expected=expected[category],
                    observed=observed[category],
                    magnitude=abs(expected[category] - observed[category]),
                    details={"threshold": limit},
                )
                for category in work_item_categories.ALL
                if abs(expected[category] - observed[category]) > limit
            ]

            verdict = ValidationVerdict(
                timestamp=self._clock(),
                project_id=project_id,
                team_id=team_id,
                kind=ValidationKind.WORK_ITEM_COUNTS,
                passed=not discrepancies,
                discrepancies=tuple(discrepancies),
                totals={"azure": expected, "dashboard": observed},
            )
            self.cache.set(
                cache_keys.work_item_counts_verdict(project_id, team_id), verdict, cache_ttl.WORK_ITEM_COUNTS_VERDICT
            )
            self._record_verdict("workItemValidations", verdict)
            ctx["success"] = verdict.passed

        return verdict

    # ------------------------------------------------------------------
    # Instrumentation
    # ------------------------------------------------------------------

    def _record_verdict(self, counter: str, verdict: ValidationVerdict) -> None:
        self.stats[counter] += 1
        self.stats["validationPassed" if verdict.passed else "validationFailed"] += 1
        logger.info(
            f"{verdict.kind.value} validation completed: {'PASSED' if verdict.passed else 'FAILED'} "
            f"({len(verdict.discrepancies)} discrepancies)",
            extra={
                "project_id": verdict.project_id,
                "team_id": verdict.team_id,
                "passed": verdict.passed,
                "discrepancies": len(verdict.discrepancies),
            },
        )

    @contextmanager
    def _instrumented(self, operation: str, project_id: str, team_id: str) -> Generator[dict[str, Any], None, None]:
        """
        Time one validation run and count its failure.

        Every run records a performance sample. Failures increment `errors`;
        anything other than a ValidationRunError is wrapped in one.
        """
        try:
            with self.performance_log.track(operation) as ctx:
                yield ctx
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(
                f"{operation} failed: {e}",
                extra={"project_id": project_id, "team_id": team_id, "exception_class": e.__class__.__name__},
            )
            if isinstance(e, ValidationRunError):
                raise
            raise ValidationRunError(f"{operation} failed: {e}") from e

    # ------------------------------------------------------------------
    # Health surface
    # ------------------------------------------------------------------

    def get_last_sync_status(self, project_id: str | None = None, team_id: str | None = None) -> HealthSummary:
        """
        Derive the health summary.

        With both project_id and team_id the verdicts for that pair decide:
        healthy (both present and passed), pending (either missing or expired),
        issues_detected (otherwise). Without them the in-memory counters
        decide: stale_data, issues_detected or healthy.

        Never raises; a failure to derive the summary yields status `error`.
        """
        now = self._clock()
        try:
            validations: dict[str, ValidationVerdict | None] = {}

            if project_id and team_id:
                sprint_verdict = self.cache.get(cache_keys.sprint_dates_verdict(project_id, team_id))
                count_verdict = self.cache.get(cache_keys.work_item_counts_verdict(project_id, team_id))
                validations = {
                    ValidationKind.SPRINT_DATES.value: sprint_verdict,
                    ValidationKind.WORK_ITEM_COUNTS.value: count_verdict,
                }

                if sprint_verdict is None or count_verdict is None:
                    overall = HealthStatus.PENDING
                elif sprint_verdict.passed and count_verdict.passed:
                    overall = HealthStatus.HEALTHY
                else:
                    overall = HealthStatus.ISSUES_DETECTED
            else:
                last_success = self.stats["lastSyncSuccess"]
                hours_since_success = hours_since(last_success, now) if last_success else None

                if hours_since_success is not None and hours_since_success > self.thresholds.alert_threshold_hours:
                    overall = HealthStatus.STALE_DATA
                elif self.stats["validationFailed"] > self.stats["validationPassed"]:
                    overall = HealthStatus.ISSUES_DETECTED
                else:
                    overall = HealthStatus.HEALTHY

            return HealthSummary(
                timestamp=now,
                overall=overall,
                stats=self._stats_snapshot(),
                validations=validations,
                performance=self.performance_log.insights(),
            )

        except Exception as e:
            logger.error(f"Failed to get sync status: {e}", exc_info=True)
            return HealthSummary(
                timestamp=now,
                overall=HealthStatus.ERROR,
                stats=self._stats_snapshot(),
                error=str(e),
            )

    def update_sync_stats(self, success: bool = False) -> None:
        """Record a sync attempt; a successful one also becomes the last success."""
        now = self._clock()
        self.stats["lastSyncAttempt"] = now
        if success:
            self.stats["lastSyncSuccess"] = now

    def get_validation_stats(self) -> dict[str, Any]:
        """Counters, thresholds, uptime and memory usage for the admin dashboard."""
        return {
            "counters": self._stats_snapshot(),
            "thresholds": self.thresholds.to_dict(),
            "uptimeSeconds": round(time.monotonic() - self._started_at, 3),
            "memoryUsage": _memory_usage(),
        }

    def _stats_snapshot(self) -> dict[str, Any]:
        return {
            key: value.isoformat() if isinstance(value, datetime) else value for key, value in self.stats.items()
        }

