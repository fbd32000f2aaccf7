"""
FastAPI Application - Dashboard Sync API

Serves the data the realtime dashboard consumes and the monitoring view of
the validation service:

    GET  /health                              overall health (503 when it cannot be derived)
    GET  /api/v1/sync/status                  validation health (optionally ?projectId=&teamId=)
    GET  /api/v1/sync/stats                   validation counters and sync job status
    GET  /api/v1/sync/last                    summary of the last sync cycle (polling)
    POST /api/v1/sync/trigger                 manual sync (optionally ?project=)
    GET  /api/metrics/sprints/{project_id}    last sprint update of a project (polling)
    GET  /api/metrics/work-items/{project_id} last work item update of a project (polling)
    GET  /api/sse/dashboard                   server-sent event stream (push)

Polling routes serve the same payloads the event stream pushes.

Usage:
    # Development
    uvicorn dashsync.api.app:app --reload --port 8000

API Documentation:
    http://localhost:8000/docs (Swagger UI)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from dashsync import __version__
from dashsync.api.middleware import CacheControlMiddleware, RequestIDMiddleware
from dashsync.core import get_logger, setup_logging_from_env
from dashsync.core.errors import ContractViolationError
from dashsync.domain.constants import cache_keys, realtime_endpoints
from dashsync.domain.realtime import EventKind
from dashsync.runtime import ServerRuntime, build_server_runtime

setup_logging_from_env()

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_app(runtime: ServerRuntime | None = None, start_sync_job: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        runtime: Services to serve; built from the environment at startup when omitted
        start_sync_job: Run the background sync schedule for the app's lifetime
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.runtime is None:
            app.state.runtime = build_server_runtime()
        logger.info("Dashboard sync API starting up")
        if start_sync_job:
            app.state.runtime.sync_job.start()

        yield

        logger.info("Dashboard sync API shutting down")
        app.state.runtime.broadcaster.close()
        if start_sync_job:
            await app.state.runtime.sync_job.stop()

    app = FastAPI(
        title="Dashboard Sync API",
        description="Cached Azure DevOps dashboard data, validation health and realtime updates",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # Add middleware (order matters - last added is executed first)
    app.add_middleware(CacheControlMiddleware)
    app.add_middleware(RequestIDMiddleware)

    def get_runtime(request: Request) -> ServerRuntime:
        runtime: ServerRuntime | None = request.app.state.runtime
        if runtime is None:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not initialized")
        return runtime

    # ============================================================
    # Health Check
    # ============================================================

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for monitoring.

        Returns:
            Global validation health; HTTP 503 only when it could not be derived
        """
        health = get_runtime(request).health
        summary = health.summary()

        content = {"status": summary.overall.value, "version": __version__, **summary.to_dict()}
        status_code = 200 if health.is_serving(summary) else 503

        return JSONResponse(content=content, status_code=status_code)

    # ============================================================
    # Sync and Validation Endpoints
    # ============================================================

    @app.get(realtime_endpoints.SYNC_STATUS, tags=["Sync"])
    async def get_sync_status(
        request: Request,
        project_id: str | None = Query(default=None, alias="projectId"),
        team_id: str | None = Query(default=None, alias="teamId"),
    ):
        """
        Validation health for a (projectId, teamId) pair, or the global view.
        """
        summary = get_runtime(request).health.summary(project_id, team_id)
        return {"success": True, "data": summary.to_dict()}

    @app.get("/api/v1/sync/stats", tags=["Sync"])
    async def get_sync_stats(request: Request):
        """Validation counters, thresholds, performance and sync job status."""
        return {"success": True, "data": get_runtime(request).health.stats()}

    @app.post("/api/v1/sync/trigger", tags=["Sync"])
    async def trigger_sync(request: Request, project: str | None = None):
        """
        Run a sync now, for one dashboard project or all of them.

        Args:
            project: Dashboard project id (all configured projects when omitted)
        """
        sync_job = get_runtime(request).sync_job

        if project is None and sync_job.is_running:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Sync cycle already in progress")

        try:
            result = await sync_job.trigger_manual_sync(project)
        except ContractViolationError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

        if result is None:
            logger.error("Manual sync cycle failed", extra={"last_error": sync_job.sync_stats["last_error"]})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Sync cycle failed: {sync_job.sync_stats['last_error']}",
            )

        return {"success": result.get("success", True), "data": result}

    # ============================================================
    # Polling Endpoints
    # ============================================================

    def cached_envelope(runtime: ServerRuntime, key: str, missing: str) -> Any:
        value = runtime.cache.get(key)
        if value is None:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"success": False, "data": None, "error": missing},
            )
        return {"success": True, "data": value}

    @app.get(realtime_endpoints.LAST_SYNC, tags=["Sync"])
    async def get_last_sync(request: Request):
        """Summary of the last completed sync cycle."""
        runtime = get_runtime(request)
        return cached_envelope(runtime, cache_keys.LAST_SYNC_UPDATE, "No sync cycle has completed yet")

    @app.get(f"{realtime_endpoints.SPRINTS}/{{project_id}}", tags=["Metrics"])
    async def get_sprints(request: Request, project_id: str):
        """Last sprint update of a dashboard project."""
        key = cache_keys.project_update(EventKind.SPRINT_UPDATED.value, project_id)
        return cached_envelope(get_runtime(request), key, f"No sprint data cached for {project_id}")

    @app.get(f"{realtime_endpoints.WORK_ITEMS}/{{project_id}}", tags=["Metrics"])
    async def get_work_items(request: Request, project_id: str):
        """Last current-sprint work item count update of a dashboard project."""
        key = cache_keys.project_update(EventKind.WORK_ITEM_UPDATED.value, project_id)
        return cached_envelope(get_runtime(request), key, f"No work item data cached for {project_id}")

    # ============================================================
    # Server-Sent Events
    # ============================================================

    @app.get(realtime_endpoints.SSE_DASHBOARD, tags=["Realtime"])
    async def stream_dashboard_events(request: Request):
        """
        Stream dashboard events (sprint_data_updated, work_item_updated,
        sync_completed, heartbeat) as Server-Sent Events.
        """
        broadcaster = get_runtime(request).broadcaster
        return StreamingResponse(broadcaster.stream(), media_type="text/event-stream", headers=SSE_HEADERS)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("API Docs: http://localhost:8000/docs")
    logger.info("Event stream: http://localhost:8000/api/sse/dashboard")

    uvicorn.run("dashsync.api.app:app", host="127.0.0.1", port=8000, reload=True, log_level="info")
