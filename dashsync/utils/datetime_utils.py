#!/usr/bin/env python3
"""
Datetime Utility Functions

Centralized datetime parsing and calculation functions shared by the
realtime transports and the validation service.

Handles common patterns:
- Azure DevOps ISO timestamps with 'Z' suffix
- Date-only sprint boundaries ("2025-01-01")
- Whole-day drift between two sprint dates
- Server event timestamps that may be naive or missing
"""

import math
from datetime import UTC, date, datetime

SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def parse_iso_timestamp(timestamp_str: str | None) -> datetime | None:
    """
    Parse generic ISO 8601 timestamp (with or without 'Z' suffix).

    Handles:
    - "2026-02-10T10:00:00Z" (UTC with Z)
    - "2026-02-10T10:00:00+00:00" (UTC explicit)
    - "2026-02-10T10:00:00" (naive datetime)
    - "2026-02-10" (date only)

    Args:
        timestamp_str: ISO 8601 timestamp string, or None

    Returns:
        datetime object (timezone-aware if specified), or None if input is empty

    Raises:
        ValueError: If timestamp format is invalid

    Examples:
        >>> parse_iso_timestamp("2026-02-10T10:00:00Z")
        datetime.datetime(2026, 2, 10, 10, 0, tzinfo=datetime.timezone.utc)

        >>> parse_iso_timestamp("2026-02-10")
        datetime.datetime(2026, 2, 10, 0, 0)
    """
    if not timestamp_str:
        return None

    if not isinstance(timestamp_str, str):
        raise ValueError(f"Timestamp must be a string, got {type(timestamp_str)}")

    try:
        if timestamp_str.endswith("Z"):
            normalized = timestamp_str[:-1] + "+00:00"
            return datetime.fromisoformat(normalized)
        return datetime.fromisoformat(timestamp_str)
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Invalid ISO timestamp format: {timestamp_str}") from e


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def coerce_datetime(value: str | date | datetime | None) -> datetime | None:
    """
    Normalize a sprint boundary or event timestamp to an aware UTC datetime.

    Accepts ISO strings, `date` and `datetime` objects. Naive values are
    interpreted as UTC, which is how Azure DevOps serializes iteration dates.

    Raises:
        ValueError: If a string value cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    parsed = parse_iso_timestamp(value)
    return ensure_utc(parsed) if parsed else None


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves rounding towards +infinity.

    Python's round() uses banker's rounding; dashboard percentages and day
    differences are defined with conventional half-up rounding.

    Examples:
        >>> round_half_up(2.5)
        3
        >>> round_half_up(-1.5)
        -1
    """
    return math.floor(value + 0.5)


def day_difference(first: str | date | datetime | None, second: str | date | datetime | None) -> int | None:
    """
    Whole-day difference `first - second`, rounded half-up.

    Returns None if either side is missing so callers can skip the comparison.

    Examples:
        >>> day_difference("2025-01-01", "2025-01-03")
        -2
        >>> day_difference("2025-01-01T00:00:00Z", None) is None
        True
    """
    a = coerce_datetime(first)
    b = coerce_datetime(second)
    if a is None or b is None:
        return None
    return round_half_up((a - b).total_seconds() / SECONDS_PER_DAY)


def hours_since(earlier: datetime, reference_time: datetime | None = None) -> float:
    """Hours elapsed between `earlier` and `reference_time` (default: now)."""
    reference = reference_time or utc_now()
    return (ensure_utc(reference) - ensure_utc(earlier)).total_seconds() / 3600
