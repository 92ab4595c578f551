"""Period totals and earnings computed from ledger and session."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .config import TrackerSettings
from .models import ReportingPeriod, TimeEntry
from .periods import DateLike, Range, in_range, month_range, period_range, start_of_day
from .session import SessionState


@dataclass(frozen=True, slots=True)
class PeriodTotals:
    period: ReportingPeriod
    duration: timedelta
    hours: float
    earnings: float


@dataclass(frozen=True, slots=True)
class MonthTotals:
    month: datetime
    duration: timedelta
    hours: float
    earnings: float


def sum_durations(entries: Iterable[TimeEntry], now: datetime) -> timedelta:
    """Signed sum; adjustment entries reduce the total."""
    total = timedelta(0)
    for entry in entries:
        total += entry.duration(now)
    return total


def range_duration(
    entries: Iterable[TimeEntry],
    session: SessionState,
    bounds: Optional[Range],
    now: datetime,
) -> timedelta:
    """Entries starting in ``bounds`` plus the live session if it started there."""
    total = sum_durations(
        (entry for entry in entries if in_range(entry.start, bounds)), now
    )
    start = session.current_session_start
    if start is not None and in_range(start, bounds):
        total += now - start
    return total


def total_duration(
    period: ReportingPeriod,
    entries: Iterable[TimeEntry],
    session: SessionState,
    week_start_day: int,
    now: datetime,
    *,
    baseline: timedelta = timedelta(0),
) -> timedelta:
    bounds = period_range(period, now, week_start_day)
    total = range_duration(entries, session, bounds, now)
    if period is ReportingPeriod.TOTAL:
        total += baseline
    return total


def to_hours(duration: timedelta) -> float:
    return duration.total_seconds() / 3600.0


def earnings(duration: timedelta, hourly_rate: float) -> float:
    return to_hours(duration) * hourly_rate


def period_totals(
    period: ReportingPeriod,
    entries: Iterable[TimeEntry],
    session: SessionState,
    settings: TrackerSettings,
    now: datetime,
    *,
    baseline: timedelta = timedelta(0),
) -> PeriodTotals:
    duration = total_duration(
        period, entries, session, settings.week_start_day, now, baseline=baseline
    )
    return PeriodTotals(
        period=period,
        duration=duration,
        hours=to_hours(duration),
        earnings=earnings(duration, settings.hourly_rate),
    )


def day_totals(
    entries: Iterable[TimeEntry],
    session: SessionState,
    start: datetime,
    end: datetime,
    now: datetime,
) -> dict[datetime, timedelta]:
    """Per-day totals for days in ``[start, end)`` that have any tracked time."""
    totals: defaultdict[datetime, timedelta] = defaultdict(timedelta)
    candidates = list(entries)
    active = session.active_entry()
    if active is not None:
        candidates.append(active)
    for entry in candidates:
        if start <= entry.start < end:
            totals[start_of_day(entry.start)] += entry.duration(now)
    return dict(sorted(totals.items()))


def days_with_entries(
    entries: Iterable[TimeEntry],
    session: SessionState,
    month: datetime,
) -> set[int]:
    """Day-of-month numbers in ``month`` with at least one entry or the live session."""
    start, end = month_range(month)
    days = {entry.start.day for entry in entries if start <= entry.start < end}
    current = session.current_session_start
    if current is not None and start <= current < end:
        days.add(current.day)
    return days


def month_totals(
    entries: Iterable[TimeEntry],
    session: SessionState,
    settings: TrackerSettings,
    month: DateLike,
    now: datetime,
) -> MonthTotals:
    """Time and earnings for any calendar month, not only the current one."""
    bounds = month_range(month)
    duration = range_duration(entries, session, bounds, now)
    return MonthTotals(
        month=bounds[0],
        duration=duration,
        hours=to_hours(duration),
        earnings=earnings(duration, settings.hourly_rate),
    )
