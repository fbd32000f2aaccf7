"""
Tests for the async HTTP client wrapper
"""

import httpx
import pytest

from dashsync.async_http_client import AsyncSecureHTTPClient


def mock_client(handler, **kwargs):
    return AsyncSecureHTTPClient(http2=False, transport=httpx.MockTransport(handler), **kwargs)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        with pytest.raises(RuntimeError, match="Client not initialized"):
            await AsyncSecureHTTPClient().get("https://dev.azure.com/contoso")

    @pytest.mark.asyncio
    async def test_client_closed_on_exit(self):
        client = mock_client(lambda request: httpx.Response(200))

        async with client:
            assert client.client is not None

        assert client.client is None


class TestRequests:
    @pytest.mark.asyncio
    async def test_get_fresh_bypasses_caches(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": []})

        async with mock_client(handler) as client:
            response = await client.get_fresh("http://dashboard.test/api/metrics/sprints/Product")

        assert response.json() == {"success": True, "data": []}
        assert seen[0].headers["Cache-Control"] == "no-cache"
        assert seen[0].headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_event_stream_headers_and_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"event: heartbeat\ndata: {}\n\n")

        async with mock_client(handler) as client:
            async with client.open_event_stream("http://dashboard.test/api/sse/dashboard", open_timeout=5) as response:
                lines = [line async for line in response.aiter_lines()]

        assert seen[0].headers["Accept"] == "text/event-stream"
        assert lines[:2] == ["event: heartbeat", "data: {}"]

    @pytest.mark.asyncio
    async def test_get_passes_caller_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        async with mock_client(handler) as client:
            await client.get("https://dev.azure.com/contoso/_apis/projects", headers={"Authorization": "Basic abc"})

        assert seen[0].headers["Authorization"] == "Basic abc"
