"""
Runtime assembly

Builds the two service graphs the package runs as:

    build_server_runtime()   cache, validation service, sync job, broadcaster, health
    build_realtime_client()  pull transport, push transport, coordinator

Every dependency is passed explicitly; only the push transport and the
coordinator are process-wide (see get_push_transport / get_realtime_coordinator).
"""

from collections.abc import Callable
from dataclasses import dataclass

from dashsync.async_http_client import AsyncSecureHTTPClient
from dashsync.cache import MemoryCache
from dashsync.collectors.upstream_adapter import ADOUpstreamAdapter, UpstreamAdapter
from dashsync.core.logging_config import get_logger
from dashsync.jobs.background_sync import BackgroundSyncJob
from dashsync.realtime.broadcaster import EventBroadcaster
from dashsync.realtime.coordinator import RealtimeCoordinator, default_endpoints, get_realtime_coordinator
from dashsync.realtime.pull_transport import PullTransport
from dashsync.realtime.push_transport import PushTransport, get_push_transport
from dashsync.secure_config import SecureConfig, get_config
from dashsync.validation.data_validation_service import DataValidationService
from dashsync.validation.health import HealthSurface

logger = get_logger(__name__)


@dataclass
class ServerRuntime:
    """Server-side services shared by the API and the sync job."""

    cache: MemoryCache
    upstream: UpstreamAdapter
    validation_service: DataValidationService
    broadcaster: EventBroadcaster
    sync_job: BackgroundSyncJob
    health: HealthSurface


@dataclass
class RealtimeClient:
    """Client-side realtime graph for one dashboard project."""

    push: PushTransport
    pull: PullTransport
    coordinator: RealtimeCoordinator


def build_server_runtime(
    config: SecureConfig | None = None,
    upstream: UpstreamAdapter | None = None,
    cache: MemoryCache | None = None,
) -> ServerRuntime:
    """
    Assemble the server runtime.

    Args:
        config: Configuration source (defaults to the global SecureConfig)
        upstream: Upstream adapter (defaults to Azure DevOps from ADO_* settings)
        cache: Shared cache (defaults to a new in-memory cache)

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    config = config or get_config()
    cache = cache or MemoryCache()
    upstream = upstream or ADOUpstreamAdapter()

    validation_service = DataValidationService(cache, thresholds=config.get_validation_thresholds())
    broadcaster = EventBroadcaster()
    sync_job = BackgroundSyncJob(
        upstream,
        cache,
        validation_service,
        config=config.get_sync_job_config(),
        broadcaster=broadcaster,
    )
    health = HealthSurface(validation_service, sync_job=sync_job)

    logger.info("Server runtime assembled", extra={"projects": len(sync_job.config.projects)})
    return ServerRuntime(
        cache=cache,
        upstream=upstream,
        validation_service=validation_service,
        broadcaster=broadcaster,
        sync_job=sync_job,
        health=health,
    )


def build_realtime_client(
    project_id: str,
    config: SecureConfig | None = None,
    client_factory: Callable[[], AsyncSecureHTTPClient] | None = None,
) -> RealtimeClient:
    """
    Assemble the realtime client for one dashboard project.

    The push transport and coordinator are the process-wide instances; call
    reset_realtime_coordinator() and reset_push_transport() before building
    a client for another project.
    """
    config = config or get_config()
    realtime_config = config.get_realtime_config()

    pull = PullTransport(realtime_config.server_url, config.get_polling_config(), client_factory=client_factory)
    push = get_push_transport(realtime_config, client_factory=client_factory)
    coordinator = get_realtime_coordinator(push, pull, realtime_config, endpoints=default_endpoints(project_id))

    logger.info(
        "Realtime client assembled",
        extra={"project_id": project_id, "push_enabled": realtime_config.push_enabled},
    )
    return RealtimeClient(push=push, pull=pull, coordinator=coordinator)
