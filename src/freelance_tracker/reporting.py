"""Formatting helpers and console summaries."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Union

from .models import ReportingPeriod, TimeEntry

Seconds = Union[float, timedelta]

PERIOD_LABELS = {
    ReportingPeriod.TODAY: "today",
    ReportingPeriod.THIS_WEEK: "this week",
    ReportingPeriod.LAST_WEEK: "last week",
    ReportingPeriod.THIS_MONTH: "this month",
    ReportingPeriod.TOTAL: "total",
}


def _as_seconds(value: Seconds) -> int:
    if isinstance(value, timedelta):
        value = value.total_seconds()
    return int(round(value))


def format_duration(seconds: Seconds) -> str:
    """``HH:MM:SS``; hours are not wrapped into days."""
    total_seconds = _as_seconds(seconds)
    sign = "-" if total_seconds < 0 else ""
    hours, remainder = divmod(abs(total_seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def format_compact_duration(seconds: Seconds) -> str:
    """``{d}d HH:MM:SS`` once a day or more has been tracked."""
    total_seconds = _as_seconds(seconds)
    if abs(total_seconds) < 86400:
        return format_duration(total_seconds)
    sign = "-" if total_seconds < 0 else ""
    days, remainder = divmod(abs(total_seconds), 86400)
    return f"{sign}{days}d {format_duration(remainder)}"


def format_hours_minutes(seconds: Seconds) -> str:
    total_seconds = _as_seconds(seconds)
    sign = "-" if total_seconds < 0 else ""
    hours, remainder = divmod(abs(total_seconds), 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{sign}{hours}h{minutes:02d}m"
    return f"{sign}{minutes}m"


def format_time_of_day(value: datetime, use_24_hour_format: bool = True) -> str:
    if use_24_hour_format:
        return f"{value.hour:02d}:{value.minute:02d}"
    hour = value.hour % 12 or 12
    meridiem = "am" if value.hour < 12 else "pm"
    return f"{hour}:{value.minute:02d} {meridiem}"


def format_time_range(
    start: datetime, end: Optional[datetime], use_24_hour_format: bool = True
) -> str:
    left = format_time_of_day(start, use_24_hour_format)
    if end is None:
        return f"{left} – active"
    return f"{left} – {format_time_of_day(end, use_24_hour_format)}"


def format_date(value: datetime) -> str:
    return value.strftime("%d.%m.%Y")


def format_money(amount: float) -> str:
    return f"{amount:.2f}"


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, tracker) -> None:
        self.tracker = tracker

    def print_status(self) -> None:
        snapshot = self.tracker.snapshot()
        state = "running" if snapshot.is_running else "paused"
        print(f"Timer {state}: {self.tracker.current_elapsed_display()}")
        if snapshot.current_session_start is not None:
            started = format_time_of_day(
                snapshot.current_session_start,
                self.tracker.settings.use_24_hour_format,
            )
            print(f"Session started at {started}")

    def print_period_summary(self, periods: Iterable[ReportingPeriod]) -> None:
        print(f"{'period':<12} {'time':>12} {'hours':>8} {'earnings':>10}")
        print("-" * 45)
        for period in periods:
            totals = self.tracker.period_totals(period)
            print(
                f"{PERIOD_LABELS[period]:<12} "
                f"{format_compact_duration(totals.duration):>12} "
                f"{totals.hours:>8.2f} "
                f"{format_money(totals.earnings):>10}"
            )

    def print_day_entries(self, day: datetime) -> None:
        entries = self.tracker.entries_for_day(day)
        print(f"Entries for {format_date(day)}")
        print("-" * 40)
        if not entries:
            print("No time recorded for the selected day.")
            return
        if self.tracker.is_day_manually_edited(day):
            print(f"changed by user  {format_duration(self.tracker.day_total(day))}")
            return
        for entry in entries:
            print(self._entry_line(entry))

    def _entry_line(self, entry: TimeEntry) -> str:
        use_24h = self.tracker.settings.use_24_hour_format
        span = format_time_range(entry.start, entry.end, use_24h)
        duration = format_duration(entry.duration(self.tracker.now()))
        return f"  {span:<24} {duration}"
