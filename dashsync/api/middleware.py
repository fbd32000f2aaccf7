"""
API Middleware

- RequestIDMiddleware: correlates a request, its response and its log lines
- CacheControlMiddleware: stops intermediaries from serving stale sync or
  polling data, and lets static routes be cached
"""

import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from dashsync.core.logging_config import get_logger, request_id_var
from dashsync.domain.constants import realtime_endpoints

logger = get_logger(__name__)

NEVER_CACHE = "no-cache, no-store, must-revalidate"
REVALIDATE = "no-cache, must-revalidate"


def http_expires(max_age: int, now: datetime | None = None) -> str:
    """RFC 7231 date `max_age` seconds from now."""
    moment = (now or datetime.now(UTC)) + timedelta(seconds=max_age)
    return moment.strftime("%a, %d %b %Y %H:%M:%S GMT")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an X-Request-ID.

    A client-supplied ID is reused; otherwise a UUID4 is minted. The ID is
    echoed on the response and stamped on every record logged while the
    request is in flight.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        client_ip = request.client.host if request.client else "unknown"

        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            logger.info(
                "API request", extra={"method": request.method, "path": request.url.path, "client_ip": client_ip}
            )
            response = await call_next(request)
            # Time to first byte for the event stream
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.info("API response", extra={"status_code": response.status_code, "duration_ms": elapsed_ms})
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


class CacheControlMiddleware(BaseHTTPMiddleware):
    """
    Cache-Control by route.

    Sync, polling and event-stream routes are marked uncacheable whatever
    the method or status. Among the remaining successful GETs, the routes in
    PUBLIC_MAX_AGE are publicly cacheable and everything else must
    revalidate.
    """

    UNCACHEABLE_PREFIXES = (
        "/api/sse/",
        f"{realtime_endpoints.SPRINTS}/",
        f"{realtime_endpoints.WORK_ITEMS}/",
        "/api/v1/sync/",
    )

    PUBLIC_MAX_AGE = {
        "/health": 60,
        "/docs": 86400,
        "/redoc": 86400,
        "/openapi.json": 86400,
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        self.apply(request.method, request.url.path, response)
        return response

    def apply(self, method: str, path: str, response: Response) -> None:
        if path.startswith(self.UNCACHEABLE_PREFIXES):
            response.headers["Cache-Control"] = NEVER_CACHE
            return
        if method != "GET" or response.status_code >= 400:
            return

        max_age = self.PUBLIC_MAX_AGE.get(path)
        if max_age is None:
            response.headers["Cache-Control"] = REVALIDATE
            return
        response.headers["Cache-Control"] = f"public, max-age={max_age}"
        response.headers["Expires"] = http_expires(max_age)
