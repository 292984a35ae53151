"""
Aggregation Windows

Named time windows resolved to absolute [from, to] intervals anchored at the
current instant. All datetimes are naive UTC, matching the ledger columns.
"""

import calendar
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import NamedTuple, Optional

from bestsellers.ranking.exceptions import InvalidArgument


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Window(str, Enum):
    """Supported aggregation windows"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    @classmethod
    def parse(cls, value) -> "Window":
        """Parse a window name, case-insensitively"""
        if isinstance(value, Window):
            return value
        if value is None:
            return cls.ALL
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(w.value for w in cls)
            raise InvalidArgument(f"Unknown period '{value}'. Expected one of: {allowed}") from None


class TimeRange(NamedTuple):
    """Closed interval [start, end]"""
    start: datetime
    end: datetime


def _shift_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_window(window: Window, epoch: datetime, now: Optional[datetime] = None) -> TimeRange:
    """
    Resolve a window to its absolute interval.

    Args:
        window: Window to resolve
        epoch: Start of the "all" window (marketplace launch date)
        now: Anchor instant, defaults to the current UTC time

    Returns:
        TimeRange with inclusive bounds
    """
    now = now or utcnow()

    if window is Window.DAY:
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif window is Window.WEEK:
        start = now - timedelta(days=7)
    elif window is Window.MONTH:
        start = _shift_months(now, -1)
    elif window is Window.YEAR:
        start = _shift_months(now, -12)
    else:
        start = epoch

    return TimeRange(start=start, end=now)


def window_label(window: Window, time_range: TimeRange) -> str:
    """Human readable description of an analysed period"""
    if window is Window.DAY:
        return "Today"
    if window is Window.WEEK:
        return "Last 7 days"
    if window is Window.MONTH:
        return "Last month"
    if window is Window.YEAR:
        return "Last 12 months"
    return f"Since {time_range.start:%Y-%m-%d}"
