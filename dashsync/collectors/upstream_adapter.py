"""
Upstream Adapter

Read-only view of authoritative sprint and work item state, as consumed by
the validation service and the background sync job.

    UpstreamAdapter       Protocol the core depends on
    ADOUpstreamAdapter    Implementation over the Azure DevOps REST client

Iteration resolution (which team, which iteration path) belongs here and
never leaks into the validation or realtime code.
"""

from typing import Any, Protocol

from dashsync.collectors.ado_rest_client import AzureDevOpsRESTClient, get_ado_rest_client
from dashsync.core.logging_config import get_logger

logger = get_logger(__name__)

WORK_ITEM_FIELDS = ["System.Id", "System.WorkItemType", "System.State", "Microsoft.VSTS.Scheduling.StoryPoints"]

BUG_TYPES = frozenset({"Bug"})
STORY_TYPES = frozenset({"User Story", "Product Backlog Item", "Story"})
TASK_TYPES = frozenset({"Task"})


class UpstreamAdapter(Protocol):
    """Authoritative sprint and work item source."""

    async def get_accurate_sprint_dates(self, project: str, team: str) -> dict[str, Any]:
        """Return `{"sprints": [{"id", "name", "startDate", "endDate", ...}]}`."""
        ...

    async def get_current_sprint_work_items(self, project: str, team: str) -> dict[str, Any]:
        """Return current-sprint counts `{"total", "bugs", "stories", "tasks"}`."""
        ...


def _date_part(value: str | None) -> str | None:
    return value.split("T")[0] if value else None


def count_work_items(work_items: list[dict[str, Any]]) -> dict[str, int]:
    """
    Count work items per dashboard category.

    Example:
        >>> count_work_items([{"fields": {"System.WorkItemType": "Bug"}}])
        {'total': 1, 'bugs': 1, 'stories': 0, 'tasks': 0}
    """
    counts = {"total": len(work_items), "bugs": 0, "stories": 0, "tasks": 0}
    for item in work_items:
        work_item_type = item.get("fields", {}).get("System.WorkItemType")
        if work_item_type in BUG_TYPES:
            counts["bugs"] += 1
        elif work_item_type in STORY_TYPES:
            counts["stories"] += 1
        elif work_item_type in TASK_TYPES:
            counts["tasks"] += 1
    return counts


class ADOUpstreamAdapter:
    """
    UpstreamAdapter over the Azure DevOps work APIs.

    Sprint dates come from the team's iteration settings; current-sprint
    counts come from the work items linked to the team's current iteration.
    """

    def __init__(self, client: AzureDevOpsRESTClient | None = None):
        self.client = client or get_ado_rest_client()

    async def get_accurate_sprint_dates(self, project: str, team: str) -> dict[str, Any]:
        response = await self.client.get_team_iterations(project, team)

        sprints = [
            {
                "id": iteration.get("id"),
                "name": iteration.get("name"),
                "path": iteration.get("path"),
                "startDate": _date_part(iteration.get("attributes", {}).get("startDate")),
                "endDate": _date_part(iteration.get("attributes", {}).get("finishDate")),
                "timeFrame": iteration.get("attributes", {}).get("timeFrame"),
            }
            for iteration in response.get("value", [])
        ]

        logger.info(
            f"Retrieved {len(sprints)} sprints for {project}/{team}",
            extra={"project": project, "team": team, "sprint_count": len(sprints)},
        )
        return {"project": project, "team": team, "sprints": sprints}

    async def get_current_sprint_work_items(self, project: str, team: str) -> dict[str, Any]:
        response = await self.client.get_team_iterations(project, team, timeframe="current")
        iterations = response.get("value", [])
        if not iterations:
            logger.warning(f"No current iteration for {project}/{team}", extra={"project": project, "team": team})
            return {"total": 0, "bugs": 0, "stories": 0, "tasks": 0, "iteration": None}

        iteration = iterations[0]
        relations = await self.client.get_iteration_work_items(project, team, iteration["id"])
        # Parent and child links both appear; each target is counted once
        ids = list(
            dict.fromkeys(
                relation["target"]["id"] for relation in relations.get("workItemRelations", []) if relation.get("target")
            )
        )

        work_items = (await self.client.get_work_items(ids, fields=WORK_ITEM_FIELDS))["value"] if ids else []
        counts = count_work_items(work_items)

        logger.info(
            f"Current sprint {iteration.get('name')} has {counts['total']} work items",
            extra={"project": project, "team": team, **counts},
        )
        return {**counts, "iteration": iteration.get("name")}
