"""
Tests for realtime domain models
"""

from datetime import UTC, datetime

import pytest

from dashsync.domain import Delivery, DeliverySource, DeliveryType, EventKind, RealtimeEvent, Subscription, SubscriptionKey

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def make_event(kind=EventKind.SPRINT_UPDATED, payload=None):
    return RealtimeEvent(kind=kind, payload=payload, timestamp=NOW, received_at=NOW)


class TestEventKind:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("sprint_data_updated", EventKind.SPRINT_UPDATED),
            ("work_item_updated", EventKind.WORK_ITEM_UPDATED),
            ("sync_completed", EventKind.SYNC_COMPLETED),
            ("heartbeat", EventKind.HEARTBEAT),
            ("message", EventKind.GENERIC_MESSAGE),
        ],
    )
    def test_known_labels(self, label, expected):
        assert EventKind.from_label(label) is expected

    def test_unknown_and_missing_labels_are_generic(self):
        assert EventKind.from_label("board_moved") is EventKind.GENERIC_MESSAGE
        assert EventKind.from_label(None) is EventKind.GENERIC_MESSAGE
        assert EventKind.from_label("") is EventKind.GENERIC_MESSAGE


class TestRealtimeEvent:
    def test_scope_fields_accept_both_spellings(self):
        camel = make_event(payload={"userId": 7, "teamId": "Data Team"})
        snake = make_event(payload={"user_id": "u-1", "team_id": "Platform"})

        assert camel.user_id == "7"
        assert camel.team_id == "Data Team"
        assert snake.user_id == "u-1"
        assert snake.team_id == "Platform"

    def test_non_dict_payload_has_no_scope(self):
        event = make_event(payload=["a", "b"])

        assert event.user_id is None
        assert event.team_id is None


class TestSubscriptionKey:
    def test_unscoped_key_matches_any_user_and_team(self):
        key = SubscriptionKey(EventKind.SPRINT_UPDATED)

        assert key.matches(make_event(payload={"teamId": "anything"}))

    def test_kind_mismatch(self):
        key = SubscriptionKey(EventKind.WORK_ITEM_UPDATED)

        assert not key.matches(make_event(EventKind.SPRINT_UPDATED))

    def test_team_scope(self):
        key = SubscriptionKey(EventKind.SPRINT_UPDATED, team_id="Data Team")

        assert key.matches(make_event(payload={"teamId": "Data Team"}))
        assert not key.matches(make_event(payload={"teamId": "Platform"}))
        assert not key.matches(make_event(payload={}))

    def test_user_scope(self):
        key = SubscriptionKey(EventKind.SPRINT_UPDATED, user_id="42")

        assert key.matches(make_event(payload={"userId": 42}))
        assert not key.matches(make_event(payload={"userId": 43}))


class TestSubscription:
    def test_filter_predicate_applies_after_key(self):
        sub = Subscription(
            id="sub-1",
            component_id="sprint-card",
            key=SubscriptionKey(EventKind.SPRINT_UPDATED),
            callback=lambda delivery: None,
            filter_predicate=lambda event: event.payload.get("projectId") == "Product",
        )

        assert sub.accepts(make_event(payload={"projectId": "Product"}))
        assert not sub.accepts(make_event(payload={"projectId": "Other"}))
        assert not sub.accepts(make_event(EventKind.HEARTBEAT, payload={"projectId": "Product"}))


class TestDelivery:
    def test_to_dict_uses_wire_names(self):
        delivery = Delivery(
            type=DeliveryType.DATA,
            key="/api/metrics/sprints/Product",
            timestamp=NOW,
            success=True,
            data={"sprints": []},
            source=DeliverySource.PULL,
        )

        assert delivery.to_dict() == {
            "type": "data",
            "endpointOrEventKind": "/api/metrics/sprints/Product",
            "timestamp": NOW.isoformat(),
            "success": True,
            "data": {"sprints": []},
            "source": "pull",
        }

    def test_to_dict_omits_empty_fields_and_merges_details(self):
        delivery = Delivery(
            type=DeliveryType.STATUS,
            key="status",
            timestamp=NOW,
            success=True,
            details={"connectionType": "push"},
        )

        data = delivery.to_dict()

        assert "data" not in data
        assert "error" not in data
        assert "source" not in data
        assert data["connectionType"] == "push"
