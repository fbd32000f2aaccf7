"""
Realtime domain models

Types shared by the push transport, the pull transport and the coordinator:
    - EventKind: closed set of server event kinds (with a generic fallback)
    - TransportState / ConnectionType: observable transport lifecycle
    - RealtimeEvent: a decoded server-pushed event
    - Delivery: what subscribers receive
    - SubscriptionKey / Subscription: coordinator-owned subscription records
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple


class EventKind(Enum):
    """Server event kinds, valued by their wire label."""

    SPRINT_UPDATED = "sprint_data_updated"
    WORK_ITEM_UPDATED = "work_item_updated"
    SYNC_COMPLETED = "sync_completed"
    HEARTBEAT = "heartbeat"
    GENERIC_MESSAGE = "message"

    @classmethod
    def from_label(cls, label: str | None) -> "EventKind":
        """
        Map a wire label to an EventKind.

        Unlabeled and unknown labels map to GENERIC_MESSAGE.

        Example:
            >>> EventKind.from_label("sprint_data_updated")
            <EventKind.SPRINT_UPDATED: 'sprint_data_updated'>
            >>> EventKind.from_label("board_moved")
            <EventKind.GENERIC_MESSAGE: 'message'>
        """
        if not label:
            return cls.GENERIC_MESSAGE
        try:
            return cls(label)
        except ValueError:
            return cls.GENERIC_MESSAGE


class TransportState(Enum):
    """Lifecycle state of a push or pull transport."""

    IDLE = "idle"
    OPENING = "opening"
    OPEN = "open"
    DEGRADED = "degraded"
    CLOSED = "closed"
    EXHAUSTED = "exhausted"


class ConnectionType(Enum):
    """Which transport currently backs the coordinator's subscriptions."""

    NONE = "none"
    OPENING = "opening"
    PUSH = "push"
    PULL = "pull"


class DeliveryType(Enum):
    DATA = "data"
    CACHED = "cached"
    ERROR = "error"
    STATUS = "status"


class DeliverySource(Enum):
    PUSH = "push"
    PULL = "pull"
    CACHE = "cache"
    MANUAL = "manual"


@dataclass(frozen=True)
class RealtimeEvent:
    """
    A decoded server-pushed event.

    Attributes:
        kind: Event kind resolved from the SSE label
        payload: Parsed JSON payload (None for heartbeats)
        timestamp: Server timestamp (falls back to receive time)
        received_at: Local receive time
        event_id: SSE `id:` field, if the server sent one
    """

    kind: EventKind
    payload: Any
    timestamp: datetime
    received_at: datetime
    event_id: str | None = None

    def _payload_field(self, *names: str) -> Any:
        if not isinstance(self.payload, dict):
            return None
        for name in names:
            if self.payload.get(name) is not None:
                return self.payload[name]
        return None

    @property
    def user_id(self) -> str | None:
        value = self._payload_field("userId", "user_id")
        return str(value) if value is not None else None

    @property
    def team_id(self) -> str | None:
        value = self._payload_field("teamId", "team_id")
        return str(value) if value is not None else None


@dataclass(frozen=True)
class Delivery:
    """
    One notification handed to a subscriber callback.

    `key` is the pull endpoint or the event-kind label the delivery belongs to.
    `cached` deliveries replay the last known value to a new subscriber;
    manual refreshes are `data` deliveries with source MANUAL.
    """

    type: DeliveryType
    key: str
    timestamp: datetime
    success: bool
    data: Any = None
    error: str | None = None
    source: DeliverySource | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire field names UI consumers expect."""
        result: dict[str, Any] = {
            "type": self.type.value,
            "endpointOrEventKind": self.key,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
        }
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        if self.source is not None:
            result["source"] = self.source.value
        result.update(self.details)
        return result


DeliveryCallback = Callable[[Delivery], None]
EventFilter = Callable[[RealtimeEvent], bool]


class SubscriptionKey(NamedTuple):
    """(event kind, user, team). None user/team matches any value."""

    event_kind: EventKind
    user_id: str | None = None
    team_id: str | None = None

    def matches(self, event: RealtimeEvent) -> bool:
        if event.kind != self.event_kind:
            return False
        if self.user_id is not None and event.user_id != self.user_id:
            return False
        if self.team_id is not None and event.team_id != self.team_id:
            return False
        return True


@dataclass(eq=False)
class Subscription:
    """
    A component's registration with the coordinator.

    Attributes:
        id: Opaque subscription id returned to the caller
        component_id: Owning UI component (at most one subscription each)
        key: Event kind plus optional user/team scope
        callback: Invoked with each Delivery
        filter_predicate: Optional extra event filter
        active: Cleared on unsubscribe; a cleared subscription is never called again
        last_timestamp: Timestamp of the last delivery (for monotonic ordering)
        delivered: Number of deliveries made
    """

    id: str
    component_id: str
    key: SubscriptionKey
    callback: DeliveryCallback
    filter_predicate: EventFilter | None = None
    active: bool = True
    last_timestamp: datetime | None = None
    delivered: int = 0

    def accepts(self, event: RealtimeEvent) -> bool:
        if not self.key.matches(event):
            return False
        if self.filter_predicate is not None and not self.filter_predicate(event):
            return False
        return True
