#!/usr/bin/env python3
"""
Application Constants

Centralized constants for cache keys, TTLs, realtime endpoints and
validation thresholds. Immutable values shared by the sync job, the
validation service and the realtime client.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CacheTTLConfig:
    """
    Cache TTLs in seconds.

    Attributes:
        WORK_ITEMS: Current-sprint work item snapshot (near real-time)
        WORK_ITEM_DETAILS: Detailed work item payloads
        ITERATIONS: Sprint/iteration list with dates
        TEAM_CAPACITY: Team capacity data
        METRICS: Calculated dashboard metrics
        TEAM_MEMBERS: Team structure
        TRENDS: Historical trends
        HEALTH: Health check results
        SPRINT_DATES_VERDICT: Validation verdict for sprint dates
        WORK_ITEM_COUNTS_VERDICT: Validation verdict for work item counts
        LAST_SYNC_UPDATE: Summary of the last sync cycle

    Example:
        >>> cache_ttl.SPRINT_DATES_VERDICT
        1800
    """

    WORK_ITEMS: int = 300
    WORK_ITEM_DETAILS: int = 900
    ITERATIONS: int = 1800
    TEAM_CAPACITY: int = 900
    METRICS: int = 300
    TEAM_MEMBERS: int = 1800
    TRENDS: int = 3600
    HEALTH: int = 60
    SPRINT_DATES_VERDICT: int = 30 * 60
    WORK_ITEM_COUNTS_VERDICT: int = 5 * 60
    LAST_SYNC_UPDATE: int = 60 * 60


@dataclass(frozen=True)
class CacheKeys:
    """
    Cache key templates.

    Dashboard snapshots and the last published update of each event kind
    are keyed by project; verdicts by (project, team).
    """

    DASHBOARD_SPRINTS: str = "dashboard:sprints:{project_id}"
    DASHBOARD_WORK_ITEMS: str = "dashboard:workItems:{project_id}"
    SPRINT_DATES_VERDICT: str = "validation:sprintDates:{project_id}:{team_id}"
    WORK_ITEM_COUNTS_VERDICT: str = "validation:workItemCounts:{project_id}:{team_id}"
    LAST_SYNC_UPDATE: str = "realtime:lastSyncUpdate"
    PROJECT_UPDATE: str = "realtime:{event_kind}:{project_id}"

    def dashboard_sprints(self, project_id: str) -> str:
        return self.DASHBOARD_SPRINTS.format(project_id=project_id)

    def dashboard_work_items(self, project_id: str) -> str:
        return self.DASHBOARD_WORK_ITEMS.format(project_id=project_id)

    def sprint_dates_verdict(self, project_id: str, team_id: str) -> str:
        return self.SPRINT_DATES_VERDICT.format(project_id=project_id, team_id=team_id)

    def work_item_counts_verdict(self, project_id: str, team_id: str) -> str:
        return self.WORK_ITEM_COUNTS_VERDICT.format(project_id=project_id, team_id=team_id)

    def project_update(self, event_kind: str, project_id: str) -> str:
        return self.PROJECT_UPDATE.format(event_kind=event_kind, project_id=project_id)


@dataclass(frozen=True)
class RealtimeEndpoints:
    """
    Server routes consumed by the push and pull transports.

    Polling routes take the project id as a trailing path segment.
    """

    SSE_DASHBOARD: str = "/api/sse/dashboard"
    SPRINTS: str = "/api/metrics/sprints"
    WORK_ITEMS: str = "/api/metrics/work-items"
    SYNC_STATUS: str = "/api/v1/sync/status"
    LAST_SYNC: str = "/api/v1/sync/last"


@dataclass(frozen=True)
class WorkItemCategories:
    """Work item count categories compared by the validation service."""

    ALL: tuple[str, ...] = ("total", "bugs", "stories", "tasks")


# Singleton instances for easy import
cache_ttl = CacheTTLConfig()
cache_keys = CacheKeys()
realtime_endpoints = RealtimeEndpoints()
work_item_categories = WorkItemCategories()
