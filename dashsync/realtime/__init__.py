"""
Realtime delivery: push (SSE) and pull (polling) transports behind a single
subscription coordinator.

Usage:
    from dashsync.realtime import RealtimeCoordinator, EventKind

    subscription_id = coordinator.subscribe("sprint-card", EventKind.SPRINT_UPDATED, on_delivery)
"""

from dashsync.domain.realtime import EventKind

from .broadcaster import EventBroadcaster
from .coordinator import RealtimeCoordinator, default_endpoints, get_realtime_coordinator, reset_realtime_coordinator
from .pull_transport import PollOptions, PullTransport
from .push_transport import PushTransport, get_push_transport, reset_push_transport
from .sse import SSEDecoder, SSEMessage, encode_comment, encode_sse

__all__ = [
    "EventBroadcaster",
    "EventKind",
    "RealtimeCoordinator",
    "default_endpoints",
    "get_realtime_coordinator",
    "reset_realtime_coordinator",
    "PollOptions",
    "PullTransport",
    "PushTransport",
    "get_push_transport",
    "reset_push_transport",
    "SSEDecoder",
    "SSEMessage",
    "encode_comment",
    "encode_sse",
]
