"""
SettlementPeriod -- half-open [start, end) billing window.

A run settles exactly one period.  The scheduled entry point defaults to the
calendar month before the clock's current time; operators may pass an
explicit month or an explicit range.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class SettlementPeriod:
    """Immutable settlement window; ``end`` is exclusive."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        start = _as_utc(self.start)
        end = _as_utc(self.end)
        if end <= start:
            raise ValueError(
                f"Settlement period end {end.isoformat()} must be after "
                f"start {start.isoformat()}"
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def for_month(cls, year: int, month: int) -> SettlementPeriod:
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        if month == 12:
            end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
        return cls(start=start, end=end)

    @classmethod
    def previous_month(cls, as_of: datetime) -> SettlementPeriod:
        """The calendar month before the one containing ``as_of``."""
        as_of = _as_utc(as_of)
        first_of_month = as_of.replace(day=1)
        last_month = first_of_month - timedelta(days=1)
        return cls.for_month(last_month.year, last_month.month)

    @classmethod
    def parse_month(cls, value: str) -> SettlementPeriod:
        """Parse ``YYYY-MM``."""
        try:
            year_str, month_str = value.split("-", 1)
            year, month = int(year_str), int(month_str)
        except ValueError:
            raise ValueError(f"Expected YYYY-MM, got {value!r}") from None
        if not 1 <= month <= 12:
            raise ValueError(f"Month out of range in {value!r}")
        return cls.for_month(year, month)

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def is_calendar_month(self) -> bool:
        if self.start.day != 1 or self.start.time() != datetime.min.time():
            return False
        return self == SettlementPeriod.for_month(self.start.year, self.start.month)

    @property
    def key(self) -> str:
        """Stable identifier, e.g. ``2026-09`` or ``20260901-20260915``."""
        if self.is_calendar_month:
            return self.start.strftime("%Y-%m")
        return f"{self.start:%Y%m%d}-{self.end:%Y%m%d}"

    @property
    def label(self) -> str:
        """Human label used in descriptions, e.g. ``September 2026``."""
        if self.is_calendar_month:
            return f"{calendar.month_name[self.start.month]} {self.start.year}"
        last_day = self.end - timedelta(microseconds=1)
        return f"{self.start:%Y-%m-%d} to {last_day:%Y-%m-%d}"

    def contains(self, moment: datetime) -> bool:
        return self.start <= _as_utc(moment) < self.end
