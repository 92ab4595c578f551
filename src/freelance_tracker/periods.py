"""Calendar ranges for reporting periods."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Union

from .models import ReportingPeriod

DateLike = Union[date, datetime]

Range = tuple[datetime, datetime]


def start_of_day(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime(value.year, value.month, value.day)


def day_range(value: DateLike) -> Range:
    start = start_of_day(value)
    return start, start + timedelta(days=1)


def weekday_number(value: DateLike) -> int:
    """1 = Sunday, 2 = Monday ... 7 = Saturday."""
    return value.isoweekday() % 7 + 1


def week_start(value: DateLike, week_start_day: int) -> datetime:
    offset = (weekday_number(value) - week_start_day + 7) % 7
    return start_of_day(value) - timedelta(days=offset)


def month_range(value: DateLike) -> Range:
    start = start_of_day(value).replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def period_range(
    period: ReportingPeriod, now: datetime, week_start_day: int
) -> Optional[Range]:
    """Half-open ``[start, end)`` for ``period``; ``None`` means unbounded."""
    if period is ReportingPeriod.TODAY:
        return day_range(now)
    if period is ReportingPeriod.THIS_WEEK:
        start = week_start(now, week_start_day)
        return start, start + timedelta(days=7)
    if period is ReportingPeriod.LAST_WEEK:
        this_week = week_start(now, week_start_day)
        return this_week - timedelta(days=7), this_week
    if period is ReportingPeriod.THIS_MONTH:
        return month_range(now)
    return None


def in_range(moment: datetime, bounds: Optional[Range]) -> bool:
    if bounds is None:
        return True
    start, end = bounds
    return start <= moment < end
