#!/usr/bin/env python3
"""
Tests for datetime_utils module

Tests timestamp parsing, half-up rounding and the sprint day-difference
calculation used by the validation service.
"""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from dashsync.utils.datetime_utils import (
    coerce_datetime,
    day_difference,
    ensure_utc,
    hours_since,
    parse_iso_timestamp,
    round_half_up,
)


class TestParseIsoTimestamp:
    """Tests for parse_iso_timestamp function."""

    def test_z_suffix_is_utc(self):
        """Test parsing ADO timestamp with Z suffix."""
        assert parse_iso_timestamp("2026-02-10T10:00:00Z") == datetime(2026, 2, 10, 10, 0, tzinfo=UTC)

    def test_date_only(self):
        """Test that date-only sprint boundaries parse to midnight."""
        assert parse_iso_timestamp("2025-01-01") == datetime(2025, 1, 1)

    def test_empty_returns_none(self):
        assert parse_iso_timestamp(None) is None
        assert parse_iso_timestamp("") is None

    def test_invalid_format(self):
        """Test that invalid format raises ValueError."""
        with pytest.raises(ValueError, match="Invalid ISO timestamp format"):
            parse_iso_timestamp("yesterday")

    def test_invalid_type(self):
        with pytest.raises(ValueError, match="Timestamp must be a string"):
            parse_iso_timestamp(12345)  # type: ignore


class TestEnsureUtc:
    def test_naive_is_interpreted_as_utc(self):
        assert ensure_utc(datetime(2025, 1, 1, 8)) == datetime(2025, 1, 1, 8, tzinfo=UTC)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        assert ensure_utc(datetime(2025, 1, 1, 10, tzinfo=plus_two)) == datetime(2025, 1, 1, 8, tzinfo=UTC)


class TestCoerceDatetime:
    def test_accepts_date_objects(self):
        assert coerce_datetime(date(2025, 1, 3)) == datetime(2025, 1, 3, tzinfo=UTC)

    def test_missing_values_return_none(self):
        assert coerce_datetime(None) is None
        assert coerce_datetime("") is None


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value,expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (-0.5, 0), (-1.5, -1), (66.666, 67)],
    )
    def test_halves_round_up(self, value, expected):
        """Test conventional rounding instead of banker's rounding."""
        assert round_half_up(value) == expected


class TestDayDifference:
    def test_one_day_drift(self):
        assert day_difference("2025-01-01", "2025-01-02") == -1

    def test_two_day_drift(self):
        assert day_difference("2025-01-03", "2025-01-01") == 2

    def test_mixed_formats(self):
        """Test that an ADO timestamp and a date-only value compare by day."""
        assert day_difference("2025-01-01T00:00:00Z", "2025-01-01") == 0

    def test_half_day_rounds_up(self):
        assert day_difference("2025-01-02T12:00:00Z", "2025-01-01T00:00:00Z") == 2

    def test_missing_side_returns_none(self):
        assert day_difference(None, "2025-01-01") is None
        assert day_difference("2025-01-01", None) is None


class TestHoursSince:
    def test_hours_between_two_times(self):
        earlier = datetime(2025, 1, 1, 8, tzinfo=UTC)
        later = datetime(2025, 1, 1, 10, 30, tzinfo=UTC)

        assert hours_since(earlier, later) == 2.5

    def test_defaults_to_now(self):
        assert hours_since(datetime.now(UTC) - timedelta(hours=1)) == pytest.approx(1, abs=0.01)
