"""
Collectors - Azure DevOps access for the sync job and the validation service.

Usage:
    from dashsync.collectors import ADOUpstreamAdapter

    upstream = ADOUpstreamAdapter()
    sprints = await upstream.get_accurate_sprint_dates("Product", "Data Team")
"""

from .ado_rest_client import AzureDevOpsRESTClient, get_ado_rest_client
from .upstream_adapter import ADOUpstreamAdapter, UpstreamAdapter, count_work_items

__all__ = [
    "ADOUpstreamAdapter",
    "AzureDevOpsRESTClient",
    "UpstreamAdapter",
    "count_work_items",
    "get_ado_rest_client",
]
