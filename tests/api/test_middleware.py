"""
API Middleware Tests

Tests request ID tracking and the Cache-Control policy per route type.
"""

import uuid
from datetime import UTC, datetime

import pytest
from fastapi import FastAPI, Response
from fastapi.testclient import TestClient

from dashsync.api.middleware import CacheControlMiddleware, RequestIDMiddleware, http_expires


@pytest.fixture
def bare_client():
    """Minimal app carrying only the middleware under test."""
    app = FastAPI()
    app.add_middleware(CacheControlMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/metrics/sprints/{project_id}")
    async def sprints(project_id: str):
        return {"success": True, "data": []}

    @app.post("/api/v1/sync/trigger")
    async def trigger():
        return {"success": True}

    @app.get("/other")
    async def other():
        return {}

    return TestClient(app)


class TestRequestIDMiddleware:
    def test_generates_request_id(self, bare_client):
        response = bare_client.get("/health")

        request_id = response.headers["X-Request-ID"]
        assert uuid.UUID(request_id)

    def test_echoes_client_request_id(self, bare_client):
        response = bare_client.get("/health", headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"

    def test_ids_are_unique_per_request(self, bare_client):
        first = bare_client.get("/health").headers["X-Request-ID"]
        second = bare_client.get("/health").headers["X-Request-ID"]

        assert first != second


class TestCacheControlMiddleware:
    def test_health_is_cached_for_a_minute(self, bare_client):
        response = bare_client.get("/health")

        assert response.headers["Cache-Control"] == "public, max-age=60"
        assert response.headers["Expires"].endswith("GMT")

    def test_polling_routes_are_never_cached(self, bare_client):
        response = bare_client.get("/api/metrics/sprints/Product")

        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    def test_sync_routes_are_never_cached_for_any_method(self, bare_client):
        response = bare_client.post("/api/v1/sync/trigger")

        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    def test_docs_cached_for_a_day(self, bare_client):
        response = bare_client.get("/openapi.json")

        assert response.headers["Cache-Control"] == "public, max-age=86400"

    def test_other_routes_must_revalidate(self, bare_client):
        response = bare_client.get("/other")

        assert response.headers["Cache-Control"] == "no-cache, must-revalidate"

    def test_errors_are_left_alone(self, bare_client):
        response = bare_client.get("/missing")

        assert response.status_code == 404
        assert "Expires" not in response.headers
        assert response.headers.get("Cache-Control") != "public, max-age=60"

    def test_expires_header_format(self):
        now = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)

        assert http_expires(60, now=now) == "Mon, 02 Mar 2026 09:31:00 GMT"

    def test_apply_leaves_failed_gets_untouched(self):
        response = Response(status_code=500)

        CacheControlMiddleware(FastAPI()).apply("GET", "/health", response)

        assert "Cache-Control" not in response.headers
