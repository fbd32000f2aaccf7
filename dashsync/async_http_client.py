"""
Async HTTP Client

One httpx.AsyncClient per `async with` block, with SSL verification always
on. Three call shapes cover every caller in the package:

    get()                Azure DevOps REST calls (caller supplies auth headers)
    get_fresh()          polling requests that must bypass HTTP caches
    open_event_stream()  the long-lived text/event-stream connection

Usage:
    async with AsyncSecureHTTPClient(timeout=10) as client:
        response = await client.get_fresh("http://localhost:8000/api/metrics/sprints/Product")

        async with client.open_event_stream(stream_url, open_timeout=10) as response:
            async for line in response.aiter_lines():
                ...
"""

from contextlib import AbstractAsyncContextManager
from typing import Any

import httpx

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Accept": "application/json"}
EVENT_STREAM_HEADERS = {"Cache-Control": "no-cache", "Accept": "text/event-stream"}


class AsyncSecureHTTPClient:
    """
    Async HTTP client with enforced SSL verification.

    Args:
        timeout: Default timeout in seconds for non-streaming requests
        max_connections: Connection pool size
        http2: Negotiate HTTP/2 where the server supports it
        transport: Transport override (tests pass httpx.MockTransport)
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_MAX_CONNECTIONS = 20

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        http2: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
        self.http2 = http2
        self.transport = transport
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncSecureHTTPClient":
        self.client = httpx.AsyncClient(
            limits=self.limits,
            timeout=httpx.Timeout(self.timeout),
            verify=True,
            http2=self.http2,
            follow_redirects=True,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with AsyncSecureHTTPClient()' context manager")
        return self.client

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET with the client's default timeout unless one is given."""
        kwargs.setdefault("timeout", self.timeout)
        return await self._require_client().get(url, **kwargs)

    async def get_fresh(self, url: str, timeout: float | None = None) -> httpx.Response:
        """GET a JSON resource, asking every cache on the way for a fresh copy."""
        return await self.get(url, headers=NO_CACHE_HEADERS, timeout=timeout or self.timeout)

    def open_event_stream(self, url: str, open_timeout: float) -> AbstractAsyncContextManager[httpx.Response]:
        """
        Open a text/event-stream response.

        Only connecting is bounded by `open_timeout`; reads never time out,
        so the caller must watch the stream's liveness itself.
        """
        timeout = httpx.Timeout(open_timeout, read=None)
        return self._require_client().stream("GET", url, headers=EVENT_STREAM_HEADERS, timeout=timeout)
