"""Unit tests for store timestamps and day thresholds."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from src.core.clock import (
    auto_completion_date,
    days_until_auto_completion,
    elapsed_days,
    has_aged,
    parse_timestamp,
    to_store_timestamp,
)
from tests.unit.mocks import NOW


@pytest.mark.unit
class TestStoreTimestamps:
    def test_fixed_width_utc_format(self):
        assert to_store_timestamp(NOW) == "2026-03-15T12:00:00.000000Z"

    def test_other_timezones_are_converted(self):
        local = datetime(2026, 3, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_store_timestamp(local) == "2026-03-15T12:00:00.000000Z"

    def test_naive_is_assumed_utc(self):
        assert to_store_timestamp(datetime(2026, 3, 15, 12, 0)) == "2026-03-15T12:00:00.000000Z"

    def test_lexical_order_matches_chronological_order(self):
        instants = [NOW + timedelta(microseconds=n * 999_999) for n in range(-5, 5)]
        stamps = [to_store_timestamp(i) for i in instants]
        assert sorted(stamps) == stamps

    @pytest.mark.parametrize(
        "value",
        [
            "2026-03-15T12:00:00.000000Z",
            "2026-03-15T12:00:00Z",
            "2026-03-15T12:00:00+00:00",
            "2026-03-15T14:00:00+02:00",
            "2026-03-15 12:00:00",
            NOW,
        ],
    )
    def test_parse(self, value):
        assert parse_timestamp(value) == NOW

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2026-13-45"])
    def test_parse_missing_or_invalid(self, value):
        assert parse_timestamp(value) is None


@pytest.mark.unit
class TestThresholds:
    def test_has_aged_is_inclusive(self):
        assert has_aged(NOW - timedelta(days=3), NOW, 3) is True
        assert has_aged(NOW - timedelta(days=3) + timedelta(seconds=1), NOW, 3) is False

    def test_future_request_has_not_aged(self):
        assert has_aged(NOW + timedelta(hours=1), NOW, 0) is False

    def test_elapsed_days(self):
        assert elapsed_days(NOW - timedelta(days=2, hours=12), NOW) == 2.5

    def test_auto_completion_date(self):
        assert auto_completion_date(NOW) == NOW + timedelta(days=14)

    @pytest.mark.parametrize(
        ("age", "expected"),
        [
            (timedelta(days=10), 4),
            (timedelta(days=11), 3),
            (timedelta(days=11, hours=6), 3),
            (timedelta(days=13, hours=23), 1),
            (timedelta(days=14), 0),
            (timedelta(days=20), 0),
        ],
    )
    def test_days_until_auto_completion(self, age, expected):
        assert days_until_auto_completion(NOW - age, NOW) == expected

    def test_results_are_utc(self):
        assert parse_timestamp("2026-03-15T14:00:00+02:00").tzinfo == UTC
