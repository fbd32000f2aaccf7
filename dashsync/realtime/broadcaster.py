"""
Event Broadcaster

Server-side fan-out for the dashboard event stream. Each connected SSE
client owns one asyncio.Queue of encoded frames; `publish` puts a frame on
every queue and `stream` drains one queue, emitting a heartbeat event
whenever the stream has been quiet for `heartbeat_interval` seconds.

Usage:
    broadcaster = EventBroadcaster()
    broadcaster.publish("sync_completed", {"projectsSynced": 2})

    return StreamingResponse(broadcaster.stream(), media_type="text/event-stream")
"""

import asyncio
import itertools
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

from dashsync.core.logging_config import get_logger
from dashsync.domain.realtime import EventKind
from dashsync.utils.datetime_utils import utc_now

from .sse import encode_comment, encode_sse

logger = get_logger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_QUEUE_SIZE = 100


class EventBroadcaster:
    """
    In-process publisher for `text/event-stream` listeners.

    Args:
        heartbeat_interval: Seconds of silence before a heartbeat event is sent
        max_queue_size: Frames buffered per listener; a slow listener loses its oldest frame
        clock: Timestamp source for heartbeats and published payloads
    """

    def __init__(
        self,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.heartbeat_interval = heartbeat_interval
        self.max_queue_size = max_queue_size
        self._clock = clock
        self._listeners: set[asyncio.Queue[str | None]] = set()
        self._event_ids = itertools.count(1)
        self._stats = {"published": 0, "dropped": 0, "connections": 0}

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self) -> "asyncio.Queue[str | None]":
        queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=self.max_queue_size)
        self._listeners.add(queue)
        self._stats["connections"] += 1
        logger.info("SSE listener connected", extra={"listeners": len(self._listeners)})
        return queue

    def remove_listener(self, queue: "asyncio.Queue[str | None]") -> None:
        if queue in self._listeners:
            self._listeners.discard(queue)
            logger.info("SSE listener disconnected", extra={"listeners": len(self._listeners)})

    def publish(self, event: str | EventKind, data: dict[str, Any]) -> int:
        """
        Send one event to every listener.

        A `timestamp` is added to the payload when absent.

        Returns:
            Number of listeners the frame was queued for
        """
        label = event.value if isinstance(event, EventKind) else event
        payload = {"timestamp": self._clock().isoformat(), **data}
        frame = encode_sse(payload, event=label, event_id=str(next(self._event_ids)))

        for queue in list(self._listeners):
            self._offer(queue, frame)

        self._stats["published"] += 1
        logger.debug(f"Published {label} to {len(self._listeners)} listeners", extra={"event": label})
        return len(self._listeners)

    def _offer(self, queue: "asyncio.Queue[str | None]", frame: str | None) -> None:
        if queue.full():
            queue.get_nowait()
            self._stats["dropped"] += 1
            logger.warning("SSE listener queue full, dropping oldest frame")
        queue.put_nowait(frame)

    def heartbeat_frame(self) -> str:
        return encode_sse(
            {"type": EventKind.HEARTBEAT.value, "timestamp": self._clock().isoformat()},
            event=EventKind.HEARTBEAT.value,
        )

    async def stream(self) -> AsyncIterator[str]:
        """
        Yield encoded frames for one listener until `close()` is called or
        the consumer stops iterating.

        The first frame is a comment so the client observes the stream as open
        before any event is published.
        """
        queue = self.add_listener()
        try:
            yield encode_comment("connected")
            while True:
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_interval)
                except TimeoutError:
                    frame = self.heartbeat_frame()
                if frame is None:
                    break
                yield frame
        finally:
            self.remove_listener(queue)

    def close(self) -> None:
        """End every open stream."""
        for queue in list(self._listeners):
            self._offer(queue, None)

    def get_stats(self) -> dict[str, int]:
        return {**self._stats, "listeners": len(self._listeners)}
