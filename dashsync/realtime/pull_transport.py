"""
Pull Transport - HTTP Polling

Periodic fetch loop per endpoint with exponential backoff on errors, a
bounded retry cap and a last-value cache per endpoint.

Each endpoint is polled by its own asyncio task. The loop sleeps for
`next_interval(endpoint)` between fetches:

    error_count == 0  ->  base_interval
    error_count  > 0  ->  min(base_interval * 2 ** (error_count - 1), max_error_interval)

After `max_retries` consecutive failures the loop stops (Exhausted) until
it is started again.

Usage:
    pull = PullTransport("http://localhost:8000", get_config().get_polling_config())
    unsubscribe = pull.subscribe("/api/metrics/sprints/Product", on_delivery)
    pull.start("/api/metrics/sprints/Product", PollOptions(interval=30))
"""

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from dashsync.async_http_client import AsyncSecureHTTPClient
from dashsync.core.errors import TransientError
from dashsync.core.logging_config import get_logger
from dashsync.domain.realtime import Delivery, DeliveryCallback, DeliverySource, DeliveryType, TransportState
from dashsync.secure_config import PollingConfig
from dashsync.utils.datetime_utils import utc_now
from dashsync.utils.error_handling import call_isolated

logger = get_logger(__name__)

ClientFactory = Callable[[], AsyncSecureHTTPClient]
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class PollOptions:
    """
    Options for one polling loop.

    Attributes:
        interval: Base interval in seconds (default: PollingConfig.default_interval,
            never below PollingConfig.min_interval)
        immediate: Fetch once before the first sleep
        transform: Applied to the unwrapped payload before caching and delivery
        on_data: Called with each successfully fetched value
        on_error: Called with each fetch error
    """

    interval: float | None = None
    immediate: bool = True
    transform: Callable[[Any], Any] | None = None
    on_data: Callable[[Any], None] | None = None
    on_error: Callable[[Exception], None] | None = None


@dataclass
class EndpointState:
    """Per-endpoint polling state. Owned exclusively by the PullTransport."""

    endpoint: str
    base_interval: float
    options: PollOptions = field(default_factory=PollOptions)
    error_count: int = 0
    is_active: bool = False
    exhausted: bool = False
    has_value: bool = False
    last_value: Any = None
    last_timestamp: datetime | None = None
    task: asyncio.Task | None = None


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class PullTransport:
    """
    Polls HTTP endpoints and fans results out to subscribers.

    Every request carries `Cache-Control: no-cache` and a hard timeout.
    Endpoint bodies shaped `{success, data, error?}` are unwrapped; a
    `success: false` body or a non-2xx status counts as a failed fetch.

    Args:
        base_url: Server origin the endpoint paths are appended to
        config: Polling intervals, backoff cap, retry ceiling and timeout
        client_factory: Builds the HTTP client used for each fetch
        sleep: Awaitable sleep (injectable for tests)
        clock: Timestamp source for deliveries
    """

    def __init__(
        self,
        base_url: str,
        config: PollingConfig,
        client_factory: ClientFactory | None = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.base_url = base_url.rstrip("/")
        self.config = config
        self._client_factory = client_factory or (lambda: AsyncSecureHTTPClient(timeout=config.request_timeout))
        self._sleep = sleep
        self._clock = clock
        self._endpoints: dict[str, EndpointState] = {}
        self._subscribers: dict[str, dict[int, DeliveryCallback]] = {}
        self._tokens = itertools.count(1)
        self._stats = {"requests": 0, "successes": 0, "errors": 0}

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def start(self, endpoint: str, options: PollOptions | None = None) -> None:
        """
        Begin polling `endpoint`. A no-op if it is already being polled.

        Must be called from within a running event loop.
        """
        state = self._endpoints.get(endpoint)
        if state is not None and state.is_active:
            logger.debug(f"Already polling {endpoint}")
            return

        options = options or (state.options if state is not None else PollOptions())
        base_interval = max(options.interval or self.config.default_interval, self.config.min_interval)

        if state is None:
            state = EndpointState(endpoint=endpoint, base_interval=base_interval, options=options)
            self._endpoints[endpoint] = state
        else:
            state.base_interval = base_interval
            state.options = options

        state.error_count = 0
        state.exhausted = False
        state.is_active = True
        state.task = asyncio.create_task(self._poll_loop(state), name=f"poll:{endpoint}")

        logger.info(
            f"Started polling {endpoint}",
            extra={"endpoint": endpoint, "interval": base_interval, "immediate": options.immediate},
        )

    def stop(self, endpoint: str) -> None:
        """
        Stop polling `endpoint`. The last value stays cached.

        Idempotent. Safe to call from inside the endpoint's own loop.
        """
        state = self._endpoints.get(endpoint)
        if state is None or (not state.is_active and state.task is None):
            return

        state.is_active = False
        task, state.task = state.task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        logger.info(f"Stopped polling {endpoint}", extra={"endpoint": endpoint})

    def next_interval(self, endpoint: str) -> float:
        """Delay before the next fetch of `endpoint`, in seconds."""
        state = self._endpoints.get(endpoint)
        if state is None:
            return self.config.default_interval
        if state.error_count == 0:
            return state.base_interval
        backoff = state.base_interval * 2 ** (state.error_count - 1)
        return min(backoff, self.config.max_error_interval)

    async def _poll_loop(self, state: EndpointState) -> None:
        first = True
        while state.is_active:
            if not (first and state.options.immediate):
                await self._sleep(self.next_interval(state.endpoint))
                if not state.is_active:
                    break
            first = False
            await self._poll_once(state)

    async def _poll_once(self, state: EndpointState) -> None:
        endpoint = state.endpoint
        try:
            value = await self._fetch(endpoint, state.options)
        except Exception as e:
            state.error_count += 1
            self._stats["errors"] += 1

            if state.error_count >= self.config.max_retries:
                state.is_active = False
                state.exhausted = True
                state.task = None
                logger.error(
                    f"Polling {endpoint} exhausted after {state.error_count} consecutive errors",
                    extra={"endpoint": endpoint, "error_count": state.error_count, "error": str(e)},
                )
            else:
                logger.warning(
                    f"Polling {endpoint} failed, retrying in {self.next_interval(endpoint):.0f}s: {e}",
                    extra={"endpoint": endpoint, "error_count": state.error_count},
                )

            if state.options.on_error is not None:
                self._invoke(state.options.on_error, e, endpoint, "Poll error handler")
            self._notify(
                endpoint,
                Delivery(
                    type=DeliveryType.ERROR,
                    key=endpoint,
                    timestamp=self._clock(),
                    success=False,
                    error=str(e),
                    source=DeliverySource.PULL,
                    details={"errorCount": state.error_count, "exhausted": state.exhausted},
                ),
            )
            return

        state.error_count = 0
        self._store(state, value)

        if state.options.on_data is not None:
            self._invoke(state.options.on_data, value, endpoint, "Poll data handler")
        self._notify(
            endpoint,
            Delivery(
                type=DeliveryType.DATA,
                key=endpoint,
                timestamp=state.last_timestamp,
                success=True,
                data=value,
                source=DeliverySource.PULL,
            ),
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _fetch(self, endpoint: str, options: PollOptions) -> Any:
        url = self._build_url(endpoint)
        self._stats["requests"] += 1

        try:
            async with self._client_factory() as client:
                response = await asyncio.wait_for(
                    client.get_fresh(url, timeout=self.config.request_timeout),
                    timeout=self.config.request_timeout,
                )
        except (httpx.HTTPError, TimeoutError) as e:
            raise TransientError(f"Request to {endpoint} failed: {str(e) or type(e).__name__}") from e

        if not response.is_success:
            raise TransientError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            body = response.json()
        except ValueError as e:
            raise TransientError(f"Invalid JSON from {endpoint}") from e

        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise TransientError(body.get("error") or f"Request to {endpoint} was not successful")
            body = body.get("data")

        self._stats["successes"] += 1
        return options.transform(body) if options.transform else body

    async def fetch_once(self, endpoint: str) -> Any:
        """
        One-shot fetch that bypasses the loop.

        Updates the endpoint's cached value but notifies no subscribers;
        the caller delivers the result itself.

        Raises:
            TransientError: If the fetch fails
        """
        state = self._endpoints.get(endpoint)
        options = state.options if state is not None else PollOptions()
        value = await self._fetch(endpoint, options)

        if state is None:
            state = EndpointState(
                endpoint=endpoint,
                base_interval=max(self.config.default_interval, self.config.min_interval),
            )
            self._endpoints[endpoint] = state
        self._store(state, value)
        return value

    def _store(self, state: EndpointState, value: Any) -> None:
        state.last_value = value
        state.has_value = True
        state.last_timestamp = self._clock()

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, endpoint: str, callback: DeliveryCallback) -> Callable[[], None]:
        """
        Register `callback` for deliveries from `endpoint`.

        If a value is cached it is replayed immediately as a CACHED delivery.
        Returns an unsubscribe function; when the last subscriber leaves the
        endpoint's loop is stopped.
        """
        token = next(self._tokens)
        self._subscribers.setdefault(endpoint, {})[token] = callback

        state = self._endpoints.get(endpoint)
        if state is not None and state.has_value:
            self._invoke(
                callback,
                Delivery(
                    type=DeliveryType.CACHED,
                    key=endpoint,
                    timestamp=state.last_timestamp,
                    success=True,
                    data=state.last_value,
                    source=DeliverySource.CACHE,
                ),
                endpoint,
                "Cached replay",
            )

        def unsubscribe() -> None:
            subscribers = self._subscribers.get(endpoint)
            if subscribers is None or subscribers.pop(token, None) is None:
                return
            if not subscribers:
                del self._subscribers[endpoint]
                self.stop(endpoint)

        return unsubscribe

    def _notify(self, endpoint: str, delivery: Delivery) -> None:
        for callback in list(self._subscribers.get(endpoint, {}).values()):
            self._invoke(callback, delivery, endpoint, "Poll subscriber")

    def _invoke(self, callback: Callable[[Any], None], arg: Any, endpoint: str, error_type: str) -> None:
        call_isolated(logger, callback, arg, context={"endpoint": endpoint}, error_type=error_type)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_cached(self, endpoint: str) -> Any | None:
        state = self._endpoints.get(endpoint)
        return state.last_value if state is not None and state.has_value else None

    def get_cached_entry(self, endpoint: str) -> tuple[Any, datetime] | None:
        """Cached value with its fetch time, or None if nothing was fetched yet."""
        state = self._endpoints.get(endpoint)
        if state is None or not state.has_value:
            return None
        return state.last_value, state.last_timestamp

    def state(self, endpoint: str) -> TransportState:
        state = self._endpoints.get(endpoint)
        if state is None:
            return TransportState.IDLE
        if state.exhausted:
            return TransportState.EXHAUSTED
        if not state.is_active:
            return TransportState.CLOSED
        return TransportState.DEGRADED if state.error_count else TransportState.OPEN

    def is_exhausted(self, endpoint: str) -> bool:
        return self.state(endpoint) is TransportState.EXHAUSTED

    def get_status(self, endpoint: str) -> dict[str, Any]:
        state = self._endpoints.get(endpoint)
        return {
            "endpoint": endpoint,
            "state": self.state(endpoint).value,
            "is_polling": bool(state and state.is_active),
            "error_count": state.error_count if state else 0,
            "has_subscribers": bool(self._subscribers.get(endpoint)),
            "last_value": self.get_cached(endpoint),
            "last_update": state.last_timestamp.isoformat() if state and state.last_timestamp else None,
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "active_polling": sorted(e for e, s in self._endpoints.items() if s.is_active),
            "total_subscribers": sum(len(subs) for subs in self._subscribers.values()),
            "cached_endpoints": sorted(e for e, s in self._endpoints.items() if s.has_value),
            "error_counts": {e: s.error_count for e, s in self._endpoints.items() if s.error_count},
        }

    async def cleanup(self) -> None:
        """Stop every loop, drop subscribers and cached values."""
        tasks = [s.task for s in self._endpoints.values() if s.task is not None]
        for endpoint in list(self._endpoints):
            self.stop(endpoint)
        await asyncio.gather(*tasks, return_exceptions=True)
        self._subscribers.clear()
        self._endpoints.clear()
        logger.info("Polling service cleaned up")
