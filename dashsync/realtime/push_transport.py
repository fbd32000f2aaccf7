"""
Push Transport - Server-Sent Events

Maintains one long-lived text/event-stream connection to the dashboard
server and hands decoded events to a single owner (the coordinator).

State machine:
    Idle --open()--> Opening --connected--> Open --stream error / heartbeat silence--> Degraded
    Degraded --backoff--> Opening
    Degraded --max consecutive failures--> Exhausted (no further retries, owner notified once)
    any --close()--> Closed

Reconnect delay after the n-th consecutive failure:
    min(reconnect_base_delay * 2 ** (n - 1), reconnect_max_delay)

Only one transport should exist per process; use get_push_transport().
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Any

import httpx

from dashsync.async_http_client import AsyncSecureHTTPClient
from dashsync.core.errors import ContractViolationError, TransientError
from dashsync.core.logging_config import get_logger
from dashsync.domain.realtime import EventKind, RealtimeEvent, TransportState
from dashsync.realtime.sse import SSEDecoder, SSEMessage
from dashsync.secure_config import RealtimeConfig, get_config
from dashsync.utils.datetime_utils import ensure_utc, parse_iso_timestamp, utc_now
from dashsync.utils.error_handling import call_isolated, log_and_continue, log_and_return_default

logger = get_logger(__name__)

EventHandler = Callable[[RealtimeEvent], None]
StateHandler = Callable[[TransportState, dict[str, Any]], None]
StatusListener = Callable[[dict[str, Any]], None]


class PushTransport:
    """
    SSE client with heartbeat supervision and bounded reconnects.

    Args:
        config: Stream URL, timeouts and reconnect policy
        client_factory: Builds the HTTP client for each connection attempt
        sleep: Awaitable sleep used for reconnect backoff (injectable for tests)
        clock: Wall-clock source for event and status timestamps
        monotonic: Monotonic clock used for heartbeat liveness
    """

    def __init__(
        self,
        config: RealtimeConfig,
        client_factory: Callable[[], AsyncSecureHTTPClient] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.url = config.stream_url
        self._client_factory = client_factory or (lambda: AsyncSecureHTTPClient(timeout=config.open_timeout))
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

        self.state = TransportState.IDLE
        self._failures = 0
        self._task: asyncio.Task | None = None
        self._last_heartbeat = 0.0

        self._on_event: EventHandler | None = None
        self._on_state_change: StateHandler | None = None
        self._status_listeners: dict[int, StatusListener] = {}
        self._next_listener_id = 0

        self._stats: dict[str, Any] = {
            "connection_attempts": 0,
            "successful_connections": 0,
            "reconnections": 0,
            "messages_received": 0,
            "errors": 0,
            "last_connection_time": None,
            "last_heartbeat": None,
        }

    # ------------------------------------------------------------------
    # Ownership and listeners
    # ------------------------------------------------------------------

    def bind(self, on_event: EventHandler, on_state_change: StateHandler | None = None) -> None:
        """
        Attach the single owner.

        Raises:
            ContractViolationError: If a different owner is already bound
        """
        if self._on_event is not None and self._on_event != on_event:
            raise ContractViolationError("Push transport is already bound to an owner")
        self._on_event = on_event
        self._on_state_change = on_state_change

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener. Returns a function that removes it."""
        self._next_listener_id += 1
        listener_id = self._next_listener_id
        self._status_listeners[listener_id] = listener

        def remove() -> None:
            self._status_listeners.pop(listener_id, None)

        return remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """
        Start connecting in the background. A no-op while already running
        or when push is disabled (offline mode).
        """
        if not self.config.push_enabled:
            logger.info("Push transport disabled (offline mode)")
            return
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="push-transport")

    def close(self, reason: str = "closed") -> None:
        """Cancel the connection task and move to Closed."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self.state is not TransportState.CLOSED:
            self._set_state(TransportState.CLOSED, reason=reason)

    def disconnect(self) -> None:
        """Close, then drop the owner binding and every status listener."""
        self.close(reason="disconnected")
        self._on_event = None
        self._on_state_change = None
        self._status_listeners.clear()
        logger.info("Push transport disconnected")

    def reconnect(self) -> None:
        """Close and reopen from Idle with the retry counter reset."""
        logger.info("Forcing push transport reconnection")
        self.close(reason="manual reconnect")
        self._failures = 0
        self.state = TransportState.IDLE
        self.open()

    @property
    def is_connected(self) -> bool:
        return self.state is TransportState.OPEN

    def reconnect_delay(self, failures: int) -> float:
        """Backoff before reconnecting after `failures` consecutive failures."""
        exponent = max(failures - 1, 0)
        return min(self.config.reconnect_base_delay * 2**exponent, self.config.reconnect_max_delay)

    async def _run(self) -> None:
        while True:
            self._stats["connection_attempts"] += 1
            self._set_state(TransportState.OPENING, attempt=self._failures + 1)

            try:
                await self._connect_and_read()
                reason = "Event stream closed by server"
            except TransientError as e:
                reason = str(e)
            except Exception as e:
                log_and_continue(logger, e, context={"url": self.url}, error_type="Event stream")
                reason = str(e) or type(e).__name__

            self._failures += 1
            self._stats["errors"] += 1

            if self._failures >= self.config.max_reconnect_attempts:
                logger.error(
                    f"Push transport exhausted after {self._failures} consecutive failures",
                    extra={"url": self.url, "failures": self._failures, "reason": reason},
                )
                self._set_state(TransportState.EXHAUSTED, error=reason, final_failure=True)
                return

            delay = self.reconnect_delay(self._failures)
            logger.warning(
                f"Push transport degraded, reconnecting in {delay:.0f}s: {reason}",
                extra={"url": self.url, "failures": self._failures, "delay": delay},
            )
            self._set_state(TransportState.DEGRADED, error=reason, retry_in=delay)
            await self._sleep(delay)
            self._stats["reconnections"] += 1

    async def _connect_and_read(self) -> None:
        async with self._client_factory() as client, AsyncExitStack() as stack:
            try:
                response = await asyncio.wait_for(
                    stack.enter_async_context(client.open_event_stream(self.url, self.config.open_timeout)),
                    timeout=self.config.open_timeout,
                )
            except (httpx.HTTPError, TimeoutError) as e:
                raise TransientError(f"Failed to open event stream: {str(e) or type(e).__name__}") from e

            if response.status_code != 200:
                raise TransientError(f"Event stream returned HTTP {response.status_code}")

            self._on_connected()

            reader = asyncio.create_task(self._read_events(response))
            watchdog = asyncio.create_task(self._watch_heartbeat())
            try:
                done, _ = await asyncio.wait({reader, watchdog}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (reader, watchdog):
                    task.cancel()
                await asyncio.gather(reader, watchdog, return_exceptions=True)

            for task in done:
                task.result()

    def _on_connected(self) -> None:
        self._failures = 0
        self._last_heartbeat = self._monotonic()
        self._stats["successful_connections"] += 1
        self._stats["last_connection_time"] = self._clock()
        logger.info("Push transport connected", extra={"url": self.url})
        self._set_state(TransportState.OPEN)

    async def _read_events(self, response: httpx.Response) -> None:
        decoder = SSEDecoder()
        try:
            async for line in response.aiter_lines():
                message = decoder.feed(line)
                if message is not None:
                    self._handle_message(message)
        except httpx.HTTPError as e:
            raise TransientError(f"Event stream dropped: {str(e) or type(e).__name__}") from e
        raise TransientError("Event stream closed by server")

    async def _watch_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_check_interval)
            if not self.check_heartbeat():
                silence = self._monotonic() - self._last_heartbeat
                raise TransientError(f"No heartbeat for {silence:.0f}s")

    def check_heartbeat(self) -> bool:
        """True while heartbeat silence does not exceed the timeout."""
        return self._monotonic() - self._last_heartbeat <= self.config.heartbeat_timeout

    # ------------------------------------------------------------------
    # Event decoding
    # ------------------------------------------------------------------

    def _handle_message(self, message: SSEMessage) -> None:
        self._stats["messages_received"] += 1
        received_at = self._clock()

        try:
            payload = message.json()
        except ValueError as e:
            payload = log_and_return_default(
                logger,
                e,
                context={"event": message.event},
                default_value=message.data,
                error_type="Event payload parsing",
            )

        kind = EventKind.from_label(message.event)
        if kind is EventKind.GENERIC_MESSAGE and isinstance(payload, dict):
            # Unlabeled messages may carry their kind in a `type` field
            kind = EventKind.from_label(payload.get("type"))

        if kind is EventKind.HEARTBEAT:
            self._last_heartbeat = self._monotonic()
            self._stats["last_heartbeat"] = received_at

        event = RealtimeEvent(
            kind=kind,
            payload=payload,
            timestamp=self._event_timestamp(payload, received_at),
            received_at=received_at,
            event_id=message.event_id,
        )
        logger.debug(f"Received {kind.value} event", extra={"event_kind": kind.value, "event_id": message.event_id})

        if self._on_event is not None:
            call_isolated(
                logger, self._on_event, event, context={"event_kind": kind.value}, error_type="Push event handler"
            )

    def _event_timestamp(self, payload: Any, received_at: datetime) -> datetime:
        raw = payload.get("timestamp") if isinstance(payload, dict) else None
        if not isinstance(raw, str):
            return received_at
        try:
            parsed = parse_iso_timestamp(raw)
        except ValueError as e:
            parsed = log_and_return_default(
                logger, e, context={"timestamp": raw}, default_value=None, error_type="Event timestamp parsing"
            )
        return ensure_utc(parsed) if parsed else received_at

    # ------------------------------------------------------------------
    # State and stats
    # ------------------------------------------------------------------

    def _set_state(self, state: TransportState, **info: Any) -> None:
        previous, self.state = self.state, state
        status = {
            "connected": state is TransportState.OPEN,
            "state": state.value,
            "previous_state": previous.value,
            "timestamp": self._clock().isoformat(),
            **info,
        }
        logger.info(
            f"Push transport {previous.value} -> {state.value}",
            extra={"url": self.url, "state": state.value, "previous_state": previous.value},
        )

        context = {"state": state.value}
        if self._on_state_change is not None:
            call_isolated(
                logger, self._on_state_change, state, status, context=context, error_type="Push state handler"
            )

        for listener in list(self._status_listeners.values()):
            call_isolated(logger, listener, status, context=context, error_type="Status listener")

    def get_connection_status(self) -> dict[str, Any]:
        last_heartbeat = self._stats["last_heartbeat"]
        return {
            "connected": self.is_connected,
            "state": self.state.value,
            "url": self.url,
            "reconnect_attempts": self._failures,
            "max_reconnect_attempts": self.config.max_reconnect_attempts,
            "last_heartbeat": last_heartbeat.isoformat() if last_heartbeat else None,
        }

    def get_stats(self) -> dict[str, Any]:
        stats = dict(self._stats)
        last_connection = stats["last_connection_time"]
        stats["uptime_seconds"] = (
            (self._clock() - last_connection).total_seconds() if self.is_connected and last_connection else 0
        )
        for key in ("last_connection_time", "last_heartbeat"):
            if stats[key] is not None:
                stats[key] = stats[key].isoformat()
        stats["state"] = self.state.value
        return stats


# Process-wide instance
_push_transport: PushTransport | None = None


def get_push_transport(config: RealtimeConfig | None = None, **kwargs: Any) -> PushTransport:
    """
    Get the process-wide push transport, creating it on first call.

    Later calls return the existing instance and ignore their arguments.
    """
    global _push_transport
    if _push_transport is None:
        _push_transport = PushTransport(config or get_config().get_realtime_config(), **kwargs)
    return _push_transport


def reset_push_transport() -> None:
    """Disconnect and forget the process-wide push transport."""
    global _push_transport
    if _push_transport is not None:
        _push_transport.disconnect()
    _push_transport = None
