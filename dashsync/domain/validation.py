"""
Data validation domain models

Verdicts, discrepancies and the derived health projection produced by the
data validation and freshness monitor:
    - ValidationVerdict: outcome of one validation run (write-once)
    - Discrepancy: a single deviation between upstream and dashboard data
    - PerformanceSample / PerformanceDigest: bounded operation timing log
    - HealthSummary: derived status, never stored
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ValidationKind(Enum):
    SPRINT_DATES = "sprintDates"
    WORK_ITEM_COUNTS = "workItemCounts"


class DiscrepancyKind(Enum):
    SPRINT_MISSING_FROM_DASHBOARD = "SprintMissingFromDashboard"
    DATE_DRIFT_EXCEEDS_THRESHOLD = "DateDriftExceedsThreshold"
    WORK_ITEM_COUNT_EXCEEDS_THRESHOLD = "WorkItemCountExceedsThreshold"


class HealthStatus(Enum):
    HEALTHY = "healthy"
    PENDING = "pending"
    ISSUES_DETECTED = "issues_detected"
    STALE_DATA = "stale_data"
    ERROR = "error"


@dataclass(frozen=True)
class Discrepancy:
    """
    One observed deviation from the consistency contract.

    Attributes:
        entity_ref: Sprint name or work item category the discrepancy concerns
        issue_kind: Classification of the deviation
        expected: Authoritative (upstream) value
        observed: Cached dashboard value (None if missing)
        magnitude: Size of the deviation (days or item count; None if missing)

    Example:
        Discrepancy(
            entity_ref="Sprint 12",
            issue_kind=DiscrepancyKind.DATE_DRIFT_EXCEEDS_THRESHOLD,
            expected={"startDate": "2025-01-01", "endDate": "2025-01-14"},
            observed={"startDate": "2025-01-03", "endDate": "2025-01-14"},
            magnitude=2,
        )
    """

    entity_ref: str
    issue_kind: DiscrepancyKind
    expected: Any
    observed: Any
    magnitude: int | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityRef": self.entity_ref,
            "issueKind": self.issue_kind.value,
            "expected": self.expected,
            "observed": self.observed,
            "magnitude": self.magnitude,
            **self.details,
        }


@dataclass(frozen=True)
class ValidationVerdict:
    """
    Outcome of a single validation run.

    Verdicts are written once and stored in the cache with a kind-specific TTL.

    Attributes:
        timestamp: When the run completed
        project_id: Upstream project
        team_id: Upstream team
        kind: Which validation produced the verdict
        passed: True iff there are no discrepancies
        discrepancies: Ordered discrepancies found
        totals: Run summary (sprint counts or compared category counts)
    """

    timestamp: datetime
    project_id: str
    team_id: str
    kind: ValidationKind
    passed: bool
    discrepancies: tuple[Discrepancy, ...] = ()
    totals: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "projectId": self.project_id,
            "teamId": self.team_id,
            "kind": self.kind.value,
            "passed": self.passed,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "totals": dict(self.totals),
        }


@dataclass(frozen=True)
class PerformanceSample:
    """Timing of one instrumented operation."""

    operation: str
    duration_ms: float
    success: bool
    timestamp: datetime
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "duration": round(self.duration_ms, 2),
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }


@dataclass(frozen=True)
class PerformanceDigest:
    """
    Summary of the bounded performance log.

    Attributes:
        average_duration: Mean duration in ms, rounded half-up
        operations: Number of samples retained
        success_rate: Integer percent of successful samples
        recent_operations: The last 10 samples, oldest first
    """

    average_duration: int = 0
    operations: int = 0
    success_rate: int = 0
    recent_operations: tuple[PerformanceSample, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "averageDuration": self.average_duration,
            "operations": self.operations,
            "successRate": self.success_rate,
            "recentOperations": [s.to_dict() for s in self.recent_operations],
        }


@dataclass(frozen=True)
class HealthSummary:
    """
    Derived health projection over counters and verdicts.

    Attributes:
        timestamp: When the summary was derived
        overall: Aggregate status
        stats: Snapshot of the validation counters
        validations: Verdicts looked up for a (project, team) query, by kind
        performance: Digest of recent instrumented operations
        error: Reason the summary could not be derived (overall == ERROR)
    """

    timestamp: datetime
    overall: HealthStatus
    stats: dict[str, Any] = field(default_factory=dict)
    validations: dict[str, ValidationVerdict | None] = field(default_factory=dict)
    performance: PerformanceDigest | None = None
    error: str | None = None

    @property
    def is_healthy(self) -> bool:
        return self.overall == HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "overall": self.overall.value,
            "stats": dict(self.stats),
        }
        if self.validations:
            result["validations"] = {
                kind: verdict.to_dict() if verdict is not None else None
                for kind, verdict in self.validations.items()
            }
        if self.performance is not None:
            result["performance"] = self.performance.to_dict()
        if self.error is not None:
            result["error"] = self.error
        return result
