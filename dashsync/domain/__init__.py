"""
Domain models for realtime delivery and data validation.

Usage:
    from dashsync.domain import EventKind, Delivery, ValidationVerdict, HealthStatus
"""

from .realtime import (
    ConnectionType,
    Delivery,
    DeliverySource,
    DeliveryType,
    EventKind,
    RealtimeEvent,
    Subscription,
    SubscriptionKey,
    TransportState,
)
from .validation import (
    Discrepancy,
    DiscrepancyKind,
    HealthStatus,
    HealthSummary,
    PerformanceDigest,
    PerformanceSample,
    ValidationKind,
    ValidationVerdict,
)

__all__ = [
    # Realtime
    "ConnectionType",
    "Delivery",
    "DeliverySource",
    "DeliveryType",
    "EventKind",
    "RealtimeEvent",
    "Subscription",
    "SubscriptionKey",
    "TransportState",
    # Validation
    "Discrepancy",
    "DiscrepancyKind",
    "HealthStatus",
    "HealthSummary",
    "PerformanceDigest",
    "PerformanceSample",
    "ValidationKind",
    "ValidationVerdict",
]
