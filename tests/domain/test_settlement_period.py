"""
Tests for SettlementPeriod and the deterministic clock.
"""

from datetime import datetime, timedelta, timezone

import pytest

from settlement_kernel.domain.clock import DeterministicClock, SystemClock
from settlement_kernel.domain.period import SettlementPeriod


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestCalendarMonths:

    def test_for_month(self):
        period = SettlementPeriod.for_month(2026, 9)

        assert period.start == utc(2026, 9, 1)
        assert period.end == utc(2026, 10, 1)
        assert period.key == "2026-09"
        assert period.label == "September 2026"
        assert period.is_calendar_month

    def test_december_rolls_year(self):
        period = SettlementPeriod.for_month(2026, 12)
        assert period.end == utc(2027, 1, 1)
        assert period.label == "December 2026"

    @pytest.mark.parametrize("as_of,expected", [
        (utc(2026, 10, 1, 0, 0), "2026-09"),
        (utc(2026, 10, 31, 23, 59), "2026-09"),
        (utc(2027, 1, 1, 6, 0), "2026-12"),
        (utc(2026, 3, 15), "2026-02"),
    ])
    def test_previous_month(self, as_of, expected):
        assert SettlementPeriod.previous_month(as_of).key == expected

    def test_previous_month_uses_utc(self):
        # 1 Oct 01:00 in UTC+02:00 is still 30 Sep in UTC
        as_of = datetime(2026, 10, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        assert SettlementPeriod.previous_month(as_of).key == "2026-08"

    def test_parse_month(self):
        assert SettlementPeriod.parse_month("2026-09") == SettlementPeriod.for_month(2026, 9)

    @pytest.mark.parametrize("value", ["2026", "2026-13", "2026-00", "sept", "2026-ab"])
    def test_parse_month_rejects(self, value):
        with pytest.raises(ValueError):
            SettlementPeriod.parse_month(value)


class TestCustomRanges:

    def test_key_and_label(self):
        period = SettlementPeriod(utc(2026, 9, 1), utc(2026, 9, 16))

        assert not period.is_calendar_month
        assert period.key == "20260901-20260916"
        assert period.label == "2026-09-01 to 2026-09-15"

    def test_naive_datetimes_are_utc(self):
        period = SettlementPeriod(datetime(2026, 9, 1), datetime(2026, 10, 1))
        assert period == SettlementPeriod.for_month(2026, 9)

    def test_end_must_follow_start(self):
        with pytest.raises(ValueError):
            SettlementPeriod(utc(2026, 9, 1), utc(2026, 9, 1))

    def test_contains_is_half_open(self):
        period = SettlementPeriod.for_month(2026, 9)

        assert period.contains(utc(2026, 9, 1))
        assert period.contains(utc(2026, 9, 30, 23, 59, 59))
        assert not period.contains(utc(2026, 10, 1))
        assert not period.contains(utc(2026, 8, 31, 23, 59, 59))


class TestClock:

    def test_deterministic_clock(self):
        clock = DeterministicClock(utc(2026, 10, 1, 6))

        assert clock.now() == clock.now() == utc(2026, 10, 1, 6)
        clock.advance(90)
        assert clock.now() == utc(2026, 10, 1, 6, 1, 30)
        clock.set_time(utc(2027, 1, 1))
        assert clock.now() == utc(2027, 1, 1)

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc
