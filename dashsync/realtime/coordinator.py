"""
Realtime Coordinator

Gives every dashboard component one way to observe "the latest value of
event kind K, optionally scoped to a user and team" over a single shared
push transport, falling back to polling when push is unavailable.

Selection between push and pull:
    1. The first subscription opens the push transport (connection type Opening).
    2. If push reaches Open within the grace period, subscriptions are push-backed.
    3. If the grace period expires first, or push degrades or exhausts, pull loops
       start for every endpoint the current subscriptions depend on.
    4. If push later opens while pull is active, pull loops are frozen; their
       cached values are kept for replay.
    5. New subscribers receive the cached last value (if any) before anything else.

Within a subscription, delivered timestamps never decrease; older events are
dropped. Callback failures are logged and never reach other subscribers.
Polled and manually refreshed payloads pass the same user/team scope and
filter as pushed events.
Transport failures reach status listeners only.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from functools import partial
from typing import Any

from dashsync.core.logging_config import get_logger
from dashsync.domain.constants import realtime_endpoints
from dashsync.domain.realtime import (
    ConnectionType,
    Delivery,
    DeliveryCallback,
    DeliverySource,
    DeliveryType,
    EventFilter,
    EventKind,
    RealtimeEvent,
    Subscription,
    SubscriptionKey,
    TransportState,
)
from dashsync.realtime.pull_transport import PollOptions, PullTransport
from dashsync.realtime.push_transport import PushTransport
from dashsync.secure_config import RealtimeConfig
from dashsync.utils.datetime_utils import utc_now
from dashsync.utils.error_handling import call_isolated, log_and_continue

logger = get_logger(__name__)

StatusListener = Callable[[Delivery], None]


def default_endpoints(project_id: str) -> dict[EventKind, str]:
    """Polling endpoint for each pull-capable event kind of a dashboard project."""
    return {
        EventKind.SPRINT_UPDATED: f"{realtime_endpoints.SPRINTS}/{project_id}",
        EventKind.WORK_ITEM_UPDATED: f"{realtime_endpoints.WORK_ITEMS}/{project_id}",
        EventKind.SYNC_COMPLETED: realtime_endpoints.LAST_SYNC,
    }


class RealtimeCoordinator:
    """
    Multiplexes component subscriptions over one push transport and a pull
    fallback.

    Args:
        push: The process-wide push transport (the coordinator becomes its owner)
        pull: Pull transport used for fallback polling and manual refresh
        config: Grace period and push/pull toggles
        endpoints: Polling endpoint per event kind; kinds without one are push-only
        poll_options: Optional per-endpoint polling options
        sleep: Awaitable sleep used for the grace period (injectable for tests)
        clock: Timestamp source for manual refresh deliveries
    """

    def __init__(
        self,
        push: PushTransport,
        pull: PullTransport,
        config: RealtimeConfig,
        endpoints: Mapping[EventKind, str] | None = None,
        poll_options: Mapping[str, PollOptions] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._push = push
        self._pull = pull
        self.config = config
        self._endpoints = dict(endpoints or {})
        self._poll_options = dict(poll_options or {})
        self._sleep = sleep
        self._clock = clock

        self.connection_type = ConnectionType.NONE
        self._subscriptions: dict[str, Subscription] = {}
        self._last_events: dict[SubscriptionKey, RealtimeEvent] = {}
        self._pull_handles: dict[str, Callable[[], None]] = {}
        self._status_listeners: dict[int, StatusListener] = {}
        self._next_listener_id = 0
        self._grace_task: asyncio.Task | None = None
        self._started = False
        self._stats = {"delivered": 0, "dropped": 0, "callback_errors": 0, "push_events": 0}

        self._push.bind(self._on_push_event, self._on_push_state)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        component_id: str,
        event_kind: EventKind,
        callback: DeliveryCallback,
        *,
        user_id: str | None = None,
        team_id: str | None = None,
        filters: EventFilter | None = None,
    ) -> str | None:
        """
        Subscribe a component to an event kind.

        A component holds at most one subscription; subscribing again replaces
        the previous one. Returns the subscription id, or None if the
        arguments are invalid.
        """
        if (
            not isinstance(component_id, str)
            or not component_id
            or not isinstance(event_kind, EventKind)
            or not callable(callback)
            or (filters is not None and not callable(filters))
        ):
            logger.warning(
                "Rejected invalid subscription",
                extra={"component_id": component_id, "event_kind": str(event_kind)},
            )
            return None

        self.unsubscribe(component_id)

        subscription = Subscription(
            id=uuid.uuid4().hex,
            component_id=component_id,
            key=SubscriptionKey(event_kind, user_id, team_id),
            callback=callback,
            filter_predicate=filters,
        )
        self._subscriptions[component_id] = subscription
        logger.debug(
            f"Component {component_id} subscribed to {event_kind.value}",
            extra={"component_id": component_id, "event_kind": event_kind.value, "subscription_id": subscription.id},
        )

        self._replay_cached(subscription)
        self._ensure_transport(event_kind)
        return subscription.id

    def unsubscribe(self, component_id: str) -> None:
        """
        Remove a component's subscription. Idempotent.

        Once this returns the callback is never invoked again. If it was the
        last subscription depending on a pull endpoint, that loop is stopped.
        """
        subscription = self._subscriptions.pop(component_id, None)
        if subscription is None:
            return
        subscription.active = False

        endpoint = self._endpoints.get(subscription.key.event_kind)
        if endpoint is not None and endpoint not in self._required_endpoints():
            self._release_pull(endpoint)

        logger.debug(f"Component {component_id} unsubscribed", extra={"component_id": component_id})

    def _replay_cached(self, subscription: Subscription) -> None:
        candidates = [e for e in self._last_events.values() if self._accepts(subscription, e)]
        if candidates:
            event = max(candidates, key=lambda e: e.timestamp)
            self._deliver(
                subscription,
                Delivery(
                    type=DeliveryType.CACHED,
                    key=event.kind.value,
                    timestamp=event.timestamp,
                    success=True,
                    data=event.payload,
                    source=DeliverySource.CACHE,
                ),
            )
            return

        endpoint = self._endpoints.get(subscription.key.event_kind)
        entry = self._pull.get_cached_entry(endpoint) if endpoint else None
        if entry is not None and self._accepts_pulled(subscription, entry[0], entry[1]):
            value, fetched_at = entry
            self._deliver(
                subscription,
                Delivery(
                    type=DeliveryType.CACHED,
                    key=endpoint,
                    timestamp=fetched_at,
                    success=True,
                    data=value,
                    source=DeliverySource.CACHE,
                ),
            )

    def _subscribers_for(self, event_kind: EventKind) -> list[Subscription]:
        return [s for s in self._subscriptions.values() if s.key.event_kind is event_kind]

    def _required_endpoints(self) -> set[str]:
        kinds = {s.key.event_kind for s in self._subscriptions.values()}
        return {self._endpoints[kind] for kind in kinds if kind in self._endpoints}

    # ------------------------------------------------------------------
    # Transport selection
    # ------------------------------------------------------------------

    def _ensure_transport(self, event_kind: EventKind) -> None:
        if not self._started:
            self._started = True
            if self.config.push_enabled:
                self.connection_type = ConnectionType.OPENING
                self._push.open()
                self._start_grace_period()
            else:
                self._activate_pull("push disabled (offline mode)")
            return

        if self.connection_type is ConnectionType.PULL:
            endpoint = self._endpoints.get(event_kind)
            if endpoint is not None:
                self._start_pull(endpoint)

    def _start_grace_period(self) -> None:
        self._cancel_grace_period()
        self._grace_task = asyncio.create_task(self._grace_period(), name="push-grace-period")

    def _cancel_grace_period(self) -> None:
        task, self._grace_task = self._grace_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _grace_period(self) -> None:
        await self._sleep(self.config.grace_period)
        self._grace_task = None
        if self.connection_type is not ConnectionType.PUSH:
            self._activate_pull(f"push not open after {self.config.grace_period:g}s grace period")

    def _activate_pull(self, reason: str) -> None:
        self._cancel_grace_period()
        if not self.config.pull_enabled:
            self._set_connection_type(ConnectionType.NONE, reason=f"{reason}; polling disabled")
            return

        self._set_connection_type(ConnectionType.PULL, reason=reason)
        for endpoint in sorted(self._required_endpoints()):
            self._start_pull(endpoint)

    def _start_pull(self, endpoint: str) -> None:
        if endpoint not in self._pull_handles:
            self._pull_handles[endpoint] = self._pull.subscribe(endpoint, partial(self._on_pull_delivery, endpoint))
        self._pull.start(endpoint, self._poll_options.get(endpoint))

    def _release_pull(self, endpoint: str) -> None:
        handle = self._pull_handles.pop(endpoint, None)
        if handle is not None:
            handle()
        self._pull.stop(endpoint)

    def _freeze_pull(self) -> None:
        for endpoint in list(self._pull_handles):
            self._pull.stop(endpoint)

    def _set_connection_type(self, connection_type: ConnectionType, reason: str | None = None) -> None:
        if connection_type is self.connection_type:
            return
        previous, self.connection_type = self.connection_type, connection_type
        logger.info(
            f"Connection type {previous.value} -> {connection_type.value}",
            extra={"previous": previous.value, "connection_type": connection_type.value, "reason": reason},
        )
        self._emit_status(reason=reason)

    def _on_push_state(self, state: TransportState, status: dict[str, Any]) -> None:
        if state is TransportState.OPEN:
            self._cancel_grace_period()
            self._freeze_pull()
            self._set_connection_type(ConnectionType.PUSH, reason="push transport open")
        elif state in (TransportState.DEGRADED, TransportState.EXHAUSTED):
            if self.connection_type is not ConnectionType.PULL and self._subscriptions:
                self._activate_pull(f"push transport {state.value}")
            elif not self._subscriptions and self.connection_type is ConnectionType.PUSH:
                self._set_connection_type(ConnectionType.NONE, reason=f"push transport {state.value}")
            if state is TransportState.EXHAUSTED:
                self._check_exhausted()

        self._emit_status(
            reason=status.get("error") or status.get("reason"),
            push_state=state.value,
            final_failure=bool(status.get("final_failure")),
        )

    def _check_exhausted(self) -> None:
        if self._push.state is not TransportState.EXHAUSTED:
            return
        endpoints = self._required_endpoints()
        pull_exhausted = not self.config.pull_enabled or all(self._pull.is_exhausted(e) for e in endpoints)
        if pull_exhausted:
            self._set_connection_type(ConnectionType.NONE, reason="push and pull transports exhausted")

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _on_push_event(self, event: RealtimeEvent) -> None:
        self._stats["push_events"] += 1
        key = SubscriptionKey(event.kind, event.user_id, event.team_id)
        previous = self._last_events.get(key)
        if previous is None or event.timestamp >= previous.timestamp:
            self._last_events[key] = event

        delivery = Delivery(
            type=DeliveryType.DATA,
            key=event.kind.value,
            timestamp=event.timestamp,
            success=True,
            data=event.payload,
            source=DeliverySource.PUSH,
        )
        for subscription in list(self._subscriptions.values()):
            if self._accepts(subscription, event):
                self._deliver(subscription, delivery)

    def _on_pull_delivery(self, endpoint: str, delivery: Delivery) -> None:
        if delivery.type is DeliveryType.CACHED:
            # Replay to new subscribers is handled in subscribe()
            return

        if delivery.type is DeliveryType.ERROR:
            self._emit_status(reason=delivery.error, endpoint=endpoint, **delivery.details)
            if self._pull.is_exhausted(endpoint):
                self._check_exhausted()
            return

        self._fan_out_pulled(endpoint, delivery)

    def _fan_out_pulled(self, endpoint: str, delivery: Delivery) -> None:
        for subscription in list(self._subscriptions.values()):
            if self._endpoints.get(subscription.key.event_kind) != endpoint:
                continue
            if self._accepts_pulled(subscription, delivery.data, delivery.timestamp):
                self._deliver(subscription, delivery)

    def _accepts_pulled(self, subscription: Subscription, payload: Any, timestamp: datetime) -> bool:
        """Apply the subscription's user/team scope and filter to a polled payload."""
        event = RealtimeEvent(
            kind=subscription.key.event_kind, payload=payload, timestamp=timestamp, received_at=timestamp
        )
        return self._accepts(subscription, event)

    def _accepts(self, subscription: Subscription, event: RealtimeEvent) -> bool:
        try:
            return subscription.accepts(event)
        except Exception as e:
            log_and_continue(
                logger,
                e,
                context={"component_id": subscription.component_id, "event_kind": event.kind.value},
                error_type="Subscription filter",
            )
            return False

    def _deliver(self, subscription: Subscription, delivery: Delivery) -> bool:
        if not subscription.active:
            return False

        if subscription.last_timestamp is not None and delivery.timestamp < subscription.last_timestamp:
            self._stats["dropped"] += 1
            logger.debug(
                "Dropped out-of-order delivery",
                extra={"component_id": subscription.component_id, "key": delivery.key},
            )
            return False

        subscription.last_timestamp = delivery.timestamp
        subscription.delivered += 1
        self._stats["delivered"] += 1

        if not call_isolated(
            logger,
            subscription.callback,
            delivery,
            context={"component_id": subscription.component_id, "key": delivery.key},
            error_type="Subscriber callback",
        ):
            self._stats["callback_errors"] += 1
        return True

    # ------------------------------------------------------------------
    # Manual control
    # ------------------------------------------------------------------

    async def refresh(self) -> dict[str, bool]:
        """
        One-shot fetch of every endpoint current subscriptions depend on,
        regardless of push state.

        Results are delivered as `data` deliveries with source MANUAL. A failed
        fetch is reported to status listeners only. Returns success per endpoint.
        """
        results: dict[str, bool] = {}
        for endpoint in sorted(self._required_endpoints()):
            try:
                value = await self._pull.fetch_once(endpoint)
            except Exception as e:
                results[endpoint] = False
                logger.warning(f"Manual refresh of {endpoint} failed: {e}", extra={"endpoint": endpoint})
                self._emit_status(reason=f"refresh failed: {e}", endpoint=endpoint)
                continue

            results[endpoint] = True
            delivery = Delivery(
                type=DeliveryType.DATA,
                key=endpoint,
                timestamp=self._clock(),
                success=True,
                data=value,
                source=DeliverySource.MANUAL,
            )
            self._fan_out_pulled(endpoint, delivery)

        logger.info("Manual refresh completed", extra={"results": results})
        return results

    async def force_reconnect(self) -> None:
        """Close the push transport and reopen it with retries reset."""
        if not self.config.push_enabled:
            logger.info("Push disabled (offline mode); reconnect skipped")
            return
        self._started = True
        self._push.reconnect()
        if self.connection_type is not ConnectionType.PULL:
            self._set_connection_type(ConnectionType.OPENING, reason="manual reconnect")
        self._start_grace_period()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener for `status` deliveries. Returns its disposer."""
        self._next_listener_id += 1
        listener_id = self._next_listener_id
        self._status_listeners[listener_id] = listener

        def remove() -> None:
            self._status_listeners.pop(listener_id, None)

        return remove

    def _emit_status(self, reason: str | None = None, **details: Any) -> None:
        delivery = Delivery(
            type=DeliveryType.STATUS,
            key="connection",
            timestamp=self._clock(),
            success=self.connection_type in (ConnectionType.PUSH, ConnectionType.PULL),
            error=reason,
            details={"connectionType": self.connection_type.value, **details},
        )
        for listener in list(self._status_listeners.values()):
            call_isolated(logger, listener, delivery, context={"reason": reason}, error_type="Status listener")

    def get_status(self) -> dict[str, Any]:
        return {
            "connection_type": self.connection_type.value,
            "push": self._push.get_connection_status(),
            "subscriptions": len(self._subscriptions),
            "subscribers_by_kind": {
                kind.value: len(self._subscribers_for(kind))
                for kind in EventKind
                if self._subscribers_for(kind)
            },
            "pull_endpoints": sorted(self._pull_handles),
            "messages": dict(self._stats),
            "pull": self._pull.get_stats(),
        }

    async def shutdown(self) -> None:
        """Drop every subscription and release both transports."""
        self._cancel_grace_period()
        for subscription in self._subscriptions.values():
            subscription.active = False
        self._subscriptions.clear()
        for endpoint in list(self._pull_handles):
            self._release_pull(endpoint)
        await self._pull.cleanup()
        self._push.disconnect()
        self._status_listeners.clear()
        self._last_events.clear()
        self.connection_type = ConnectionType.NONE
        self._started = False
        logger.info("Realtime coordinator shut down")


# Process-wide instance
_coordinator: RealtimeCoordinator | None = None


def get_realtime_coordinator(
    push: PushTransport | None = None,
    pull: PullTransport | None = None,
    config: RealtimeConfig | None = None,
    **kwargs: Any,
) -> RealtimeCoordinator:
    """
    Get the process-wide coordinator, creating it on first call.

    The first call must supply the transports and config; later calls return
    the existing instance and ignore their arguments.
    """
    global _coordinator
    if _coordinator is None:
        if push is None or pull is None or config is None:
            raise RuntimeError("First call to get_realtime_coordinator() must supply push, pull and config")
        _coordinator = RealtimeCoordinator(push, pull, config, **kwargs)
    return _coordinator


def reset_realtime_coordinator() -> None:
    """Forget the process-wide coordinator (it should be shut down first)."""
    global _coordinator
    _coordinator = None
