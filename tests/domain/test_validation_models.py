"""
Tests for data validation domain models
"""

from datetime import UTC, datetime

from dashsync.domain import (
    Discrepancy,
    DiscrepancyKind,
    HealthStatus,
    HealthSummary,
    PerformanceDigest,
    ValidationKind,
    ValidationVerdict,
)

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


class TestDiscrepancy:
    def test_to_dict(self):
        discrepancy = Discrepancy(
            entity_ref="Sprint 12",
            issue_kind=DiscrepancyKind.DATE_DRIFT_EXCEEDS_THRESHOLD,
            expected={"startDate": "2025-01-01"},
            observed={"startDate": "2025-01-03"},
            magnitude=2,
            details={"startDiffDays": 2},
        )

        assert discrepancy.to_dict() == {
            "entityRef": "Sprint 12",
            "issueKind": "DateDriftExceedsThreshold",
            "expected": {"startDate": "2025-01-01"},
            "observed": {"startDate": "2025-01-03"},
            "magnitude": 2,
            "startDiffDays": 2,
        }


class TestValidationVerdict:
    def test_to_dict_serializes_nested_discrepancies(self):
        verdict = ValidationVerdict(
            timestamp=NOW,
            project_id="Product",
            team_id="Data Team",
            kind=ValidationKind.SPRINT_DATES,
            passed=False,
            discrepancies=(
                Discrepancy("Sprint 13", DiscrepancyKind.SPRINT_MISSING_FROM_DASHBOARD, {"name": "Sprint 13"}, None),
            ),
            totals={"upstreamSprints": 2, "dashboardSprints": 1},
        )

        data = verdict.to_dict()

        assert data["kind"] == "sprintDates"
        assert data["passed"] is False
        assert data["discrepancies"][0]["issueKind"] == "SprintMissingFromDashboard"
        assert data["discrepancies"][0]["magnitude"] is None
        assert data["totals"] == {"upstreamSprints": 2, "dashboardSprints": 1}


class TestHealthSummary:
    def test_is_healthy(self):
        assert HealthSummary(timestamp=NOW, overall=HealthStatus.HEALTHY).is_healthy
        assert not HealthSummary(timestamp=NOW, overall=HealthStatus.PENDING).is_healthy

    def test_to_dict_minimal(self):
        data = HealthSummary(timestamp=NOW, overall=HealthStatus.PENDING, stats={"totalValidations": 0}).to_dict()

        assert data == {
            "timestamp": NOW.isoformat(),
            "overall": "pending",
            "stats": {"totalValidations": 0},
        }

    def test_to_dict_includes_optional_sections(self):
        summary = HealthSummary(
            timestamp=NOW,
            overall=HealthStatus.ERROR,
            validations={"sprintDates": None},
            performance=PerformanceDigest(),
            error="counter store unavailable",
        )

        data = summary.to_dict()

        assert data["validations"] == {"sprintDates": None}
        assert data["performance"]["operations"] == 0
        assert data["error"] == "counter store unavailable"
