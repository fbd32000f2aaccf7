"""
Azure DevOps REST client for the work tracking endpoints the sync job reads:

    GET {org}/{project}/{team}/_apis/work/teamsettings/iterations
    GET {org}/{project}/{team}/_apis/work/teamsettings/iterations/{id}/workitems
    GET {org}/_apis/wit/workitems?ids=...

Every call retries throttling (429, honouring Retry-After), gateway errors
(500/502/503) and network failures, up to three attempts. Auth failures and
any other HTTP error surface immediately.

Reference: https://learn.microsoft.com/en-us/rest/api/azure/devops/?view=azure-devops-rest-7.1
"""

import asyncio
import base64
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from dashsync.async_http_client import AsyncSecureHTTPClient
from dashsync.core.errors import RetriesExhaustedError
from dashsync.core.logging_config import get_logger
from dashsync.secure_config import get_config

logger = get_logger(__name__)

API_VERSION = "7.1"
MAX_ATTEMPTS = 3
WORK_ITEM_BATCH_SIZE = 200  # ADO rejects larger id lists
DEFAULT_RETRY_AFTER = 60
RETRYABLE_STATUSES = frozenset({500, 502, 503})
AUTH_STATUSES = frozenset({401, 403})


def basic_auth_headers(pat: str) -> dict[str, str]:
    """PAT as the password of an empty-username Basic credential."""
    token = base64.b64encode(f":{pat}".encode()).decode()  # nosec B108
    return {
        "Authorization": f"Basic {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


class AzureDevOpsRESTClient:
    """
    Read-only Azure DevOps work tracking client.

    Args:
        organization_url: e.g. https://dev.azure.com/contoso
        pat: Personal Access Token
        client_factory: Builds the HTTP client for each attempt
        sleep: Awaited between attempts
    """

    def __init__(
        self,
        organization_url: str,
        pat: str,
        client_factory: Callable[[], AsyncSecureHTTPClient] = AsyncSecureHTTPClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not organization_url or not pat:
            raise ValueError("organization_url and pat are required")

        self.organization_url = organization_url.rstrip("/")
        self.auth_header = basic_auth_headers(pat)
        self._client_factory = client_factory
        self._sleep = sleep

    def _build_url(self, project: str | None, path: str, team: str | None = None, **params: Any) -> str:
        """
        Join org, optional project/team segments and `_apis/{path}`.

        Segments are percent-quoted; query params whose value is None are left out.
        """
        parts = [self.organization_url]
        if project:
            parts.append(quote(project, safe=""))
            if team:
                parts.append(quote(team, safe=""))
        parts.append(f"_apis/{path}")

        url = "/".join(parts)
        query = urlencode({key: value for key, value in params.items() if value is not None})
        return f"{url}?{query}" if query else url

    @staticmethod
    def _retry_delay(error: Exception, attempt: int) -> float | None:
        """Seconds to wait before the next attempt, or None if `error` is final."""
        if isinstance(error, httpx.RequestError):
            return 2**attempt
        if not isinstance(error, httpx.HTTPStatusError):
            return None

        response = error.response
        if response.status_code == 429:
            return int(response.headers.get("Retry-After", DEFAULT_RETRY_AFTER))
        if response.status_code in RETRYABLE_STATUSES:
            return 2**attempt
        return None

    async def _get_json(self, url: str) -> dict[str, Any]:
        last_error: Exception | None = None

        for attempt in range(MAX_ATTEMPTS):
            try:
                async with self._client_factory() as client:
                    response = await client.get(url, headers=self.auth_header)
                    response.raise_for_status()
                    return response.json()  # type: ignore[no-any-return]
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                delay = self._retry_delay(e, attempt)
                if delay is None:
                    status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                    reason = "Authentication failed" if status_code in AUTH_STATUSES else "ADO request rejected"
                    logger.error(f"{reason} (HTTP {status_code})", extra={"url": url, "status_code": status_code})
                    raise

                logger.warning(
                    f"ADO request failed, retrying in {delay}s: {e}",
                    extra={"url": url, "attempt": attempt + 1, "max_attempts": MAX_ATTEMPTS},
                )
                last_error = e
                await self._sleep(delay)

        logger.error("ADO request retries exhausted", extra={"url": url, "max_attempts": MAX_ATTEMPTS})
        raise RetriesExhaustedError(f"ADO API call failed after {MAX_ATTEMPTS} attempts: {last_error}") from last_error

    async def get_team_iterations(self, project: str, team: str, timeframe: str | None = None) -> dict[str, Any]:
        """
        Sprints the team subscribes to; timeframe="current" narrows to the active one.

        Returns the raw ADO body:
            {"count": 1, "value": [{"id": "...", "name": "Sprint 12",
                                    "attributes": {"startDate": ..., "finishDate": ..., "timeFrame": "current"}}]}
        """
        url = self._build_url(
            project,
            "work/teamsettings/iterations",
            team=team,
            **{"$timeframe": timeframe, "api-version": API_VERSION},
        )
        return await self._get_json(url)

    async def get_iteration_work_items(self, project: str, team: str, iteration_id: str) -> dict[str, Any]:
        """Work item links of one iteration: {"workItemRelations": [{"target": {"id": 1001}}, ...]}."""
        path = f"work/teamsettings/iterations/{iteration_id}/workitems"
        return await self._get_json(self._build_url(project, path, team=team, **{"api-version": API_VERSION}))

    async def get_work_items(self, ids: list[int], fields: list[str] | None = None) -> dict[str, Any]:
        """Work items by id, fetched in batches of WORK_ITEM_BATCH_SIZE and merged."""
        field_list = ",".join(fields) if fields else None
        items: list[dict[str, Any]] = []

        for offset in range(0, len(ids), WORK_ITEM_BATCH_SIZE):
            batch = ids[offset : offset + WORK_ITEM_BATCH_SIZE]
            url = self._build_url(
                None,
                "wit/workitems",
                ids=",".join(map(str, batch)),
                fields=field_list,
                **{"api-version": API_VERSION},
            )
            body = await self._get_json(url)
            items.extend(body.get("value", []))

        return {"count": len(items), "value": items}


def get_ado_rest_client() -> AzureDevOpsRESTClient:
    """
    Client for the organization configured in ADO_ORGANIZATION_URL / ADO_PAT.

    Raises:
        ConfigurationError: If either setting is missing or invalid
    """
    ado_config = get_config().get_ado_config()
    return AzureDevOpsRESTClient(organization_url=ado_config.organization_url, pat=ado_config.pat)
