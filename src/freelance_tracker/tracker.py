"""The tracker service: session, ledger, persistence and notifications."""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from .aggregation import (
    MonthTotals,
    PeriodTotals,
    day_totals,
    days_with_entries,
    month_totals,
    period_totals,
    sum_durations,
)
from .clock import Clock, SystemClock
from .config import TrackerSettings
from .db import KeyValueStore
from .ledger import EntryLedger
from .models import ReportingPeriod, TimeEntry, parse_timestamp
from .periods import DateLike, Range, day_range, in_range, period_range
from .reporting import format_duration
from .session import SessionState

logger = logging.getLogger(__name__)

ENTRIES_KEY = "timeEntries"
SESSION_START_KEY = "currentSessionStart"
IS_RUNNING_KEY = "isRunning"
ACCUMULATED_KEY = "totalAccumulatedTime"
ACCUMULATED_UPDATED_KEY = "lastAccumulatedTimeUpdate"
TOTAL_BASELINE_KEY = "manualTotalOffset"

# Errors a store may raise; none of them are allowed to escape the tracker.
STORE_ERRORS = (sqlite3.Error, OSError, TypeError, ValueError)

MIN_ADJUSTMENT = timedelta(seconds=1)


class TrackerEventType(str, Enum):
    STARTED = "started"
    PAUSED = "paused"
    RESET = "reset"
    TICKED = "ticked"
    ROLLED_OVER = "rolled_over"
    LEDGER_CHANGED = "ledger_changed"
    SETTINGS_CHANGED = "settings_changed"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True, slots=True)
class TrackerEvent:
    """Published to subscribers after a command completes."""

    type: TrackerEventType
    timestamp: datetime
    detail: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TrackerSnapshot:
    is_running: bool
    current_session_start: Optional[datetime]
    elapsed_time: timedelta
    total_accumulated_time: timedelta
    entry_count: int


Listener = Callable[[TrackerEvent], None]


class TimeTracker:
    """Owns the session state and entry ledger for one application run.

    Every mutation is persisted immediately. Store failures are logged and
    published as ``PERSISTENCE_FAILED`` events; the in-memory state stays
    authoritative.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[TrackerSettings] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._pending: list[TrackerEvent] = []
        self._session = SessionState()
        self._ledger = EntryLedger()
        self._baseline = timedelta(0)
        self.settings = settings or self._load_settings()
        self._load()

    # ------------------------------------------------------------------
    # Lifecycle

    def _load_settings(self) -> TrackerSettings:
        try:
            return TrackerSettings.from_store(self._store)
        except STORE_ERRORS as exc:
            logger.warning("Could not read settings, using defaults: %s", exc)
            return TrackerSettings()

    def _load(self) -> None:
        now = self.now()
        self._ledger = EntryLedger.from_payload(self._read(ENTRIES_KEY))
        self._session.total_accumulated_time = self._read_duration(ACCUMULATED_KEY)
        self._baseline = self._read_duration(TOTAL_BASELINE_KEY)

        raw_start = self._read(SESSION_START_KEY)
        running = self._read(IS_RUNNING_KEY)
        if raw_start is not None and running is True:
            try:
                start = parse_timestamp(raw_start)
            except ValueError as exc:
                logger.warning("Discarding unreadable session start: %s", exc)
                self._save_session()
            else:
                self._session.current_session_start = start
                self._session.elapsed_time = now - start
        elif raw_start is not None or running is not None:
            logger.warning("Discarding incomplete stored session.")
            self._save_session()

        self._reset_accumulated_if_new_day(now)
        self._pending.clear()
        logger.debug(
            "Loaded %d entries; running=%s", len(self._ledger), self._session.is_running
        )

    def _reset_accumulated_if_new_day(self, now: datetime) -> None:
        raw = self._read(ACCUMULATED_UPDATED_KEY)
        if raw is None:
            return
        try:
            last_update = parse_timestamp(raw)
        except ValueError as exc:
            logger.warning("Unreadable accumulated-time timestamp: %s", exc)
            return
        if last_update.date() < now.date():
            logger.info("New day since %s; resetting accumulated time.", last_update.date())
            self._session.total_accumulated_time = timedelta(0)
            self._save_accumulated(now)

    def close(self) -> None:
        """Flush all state and release the store."""
        with self._mutating():
            now = self.now()
            self._save_entries()
            self._save_accumulated(now)
            self._save_session()
            self._save_baseline()
        closer = getattr(self._store, "close", None)
        if closer is not None:
            try:
                closer()
            except STORE_ERRORS as exc:
                logger.warning("Failed to close store: %s", exc)

    # ------------------------------------------------------------------
    # Notifications

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _queue(self, event_type: TrackerEventType, detail: Optional[str] = None) -> None:
        self._pending.append(TrackerEvent(event_type, self.now(), detail))

    @contextmanager
    def _mutating(self) -> Iterator[None]:
        with self._lock:
            yield
            events, self._pending = self._pending, []
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Listener failed for %s", event.type.value)

    # ------------------------------------------------------------------
    # Session commands

    def now(self) -> datetime:
        return self._clock.now()

    def start(self) -> None:
        with self._mutating():
            self._start_locked(self.now())

    def pause(self) -> None:
        with self._mutating():
            self._pause_locked(self.now())

    def record_and_restart(self) -> None:
        """Store the running session, clear today's accumulation and start anew."""
        with self._mutating():
            now = self.now()
            self._pause_locked(now)
            self._session.total_accumulated_time = timedelta(0)
            self._save_accumulated(now)
            self._start_locked(now)

    def reset(self) -> None:
        """Discard the running session and accumulated time without an entry."""
        with self._mutating():
            self._session.reset()
            self._save_accumulated(self.now())
            self._save_session()
            self._queue(TrackerEventType.RESET)

    def tick(self) -> None:
        with self._mutating():
            if not self._session.is_running:
                return
            now = self.now()
            splits = self._session.tick(now)
            if splits:
                for entry in splits:
                    self._ledger.append(entry)
                logger.info(
                    "Split session at midnight into %d entr%s.",
                    len(splits),
                    "y" if len(splits) == 1 else "ies",
                )
                self._save_entries()
                self._save_accumulated(now)
                self._save_session()
                self._queue(TrackerEventType.ROLLED_OVER)
            self._queue(TrackerEventType.TICKED)

    def _start_locked(self, now: datetime) -> bool:
        if not self._session.start(now):
            logger.debug("Ignoring start; session already running.")
            return False
        self._save_session()
        self._queue(TrackerEventType.STARTED)
        return True

    def _pause_locked(self, now: datetime) -> bool:
        entry = self._session.pause(now)
        if entry is None:
            logger.debug("Ignoring pause; no session running.")
            return False
        self._ledger.append(entry)
        self._save_entries()
        self._save_accumulated(now)
        self._save_session()
        self._queue(TrackerEventType.PAUSED)
        return True

    # ------------------------------------------------------------------
    # Ledger commands

    def delete_day(self, day: DateLike) -> None:
        with self._mutating():
            self._clear_range_locked(day_range(day))
            self._queue(TrackerEventType.LEDGER_CHANGED)

    def edit_day(self, day: DateLike, duration: timedelta) -> None:
        """Replace a day's entries with one entry starting at midnight."""
        with self._mutating():
            bounds = day_range(day)
            self._clear_range_locked(bounds)
            self._insert_anchored_locked(bounds[0], duration)
            self._queue(TrackerEventType.LEDGER_CHANGED)

    def edit_period(self, period: ReportingPeriod, duration: timedelta) -> None:
        with self._mutating():
            now = self.now()
            if period is ReportingPeriod.TOTAL:
                self._pause_locked(now)
                self._ledger.clear()
                self._session.total_accumulated_time = duration
                self._baseline = duration
                self._save_entries()
                self._save_accumulated(now)
                self._save_baseline()
            else:
                bounds = self._range(period, now)
                self._clear_range_locked(bounds)
                self._insert_anchored_locked(bounds[0], duration)
            self._queue(TrackerEventType.LEDGER_CHANGED)

    def reset_period(self, period: ReportingPeriod) -> None:
        with self._mutating():
            if period in (ReportingPeriod.TOTAL, ReportingPeriod.LAST_WEEK):
                bounds: Optional[Range] = None
            else:
                bounds = self._range(period, self.now())
            self._clear_range_locked(bounds)
            if period is ReportingPeriod.TOTAL:
                self._baseline = timedelta(0)
                self._save_baseline()
            self._queue(TrackerEventType.LEDGER_CHANGED)

    def adjust_period(self, period: ReportingPeriod, duration: timedelta) -> None:
        """Append one signed entry so the period total becomes ``duration``."""
        with self._mutating():
            now = self.now()
            delta = duration - self._totals_locked(period, now).duration
            if abs(delta) < MIN_ADJUSTMENT:
                logger.debug("Adjustment of %s below one second; ignored.", delta)
                return
            bounds = period_range(period, now, self.settings.week_start_day)
            anchor = now if in_range(now, bounds) else bounds[0]
            # A negative delta yields an entry ending before it starts.
            self._ledger.append(TimeEntry(start=anchor, end=anchor + delta))
            self._save_entries()
            self._queue(TrackerEventType.LEDGER_CHANGED)

    def update_settings(self, **changes: Any) -> TrackerSettings:
        with self._mutating():
            self.settings = dataclasses.replace(self.settings, **changes)
            try:
                self.settings.save(self._store)
            except STORE_ERRORS as exc:
                self._report_store_failure("settings", exc)
            self._queue(TrackerEventType.SETTINGS_CHANGED)
            return self.settings

    def _clear_range_locked(self, bounds: Optional[Range]) -> int:
        start = self._session.current_session_start
        if start is not None and in_range(start, bounds):
            self._pause_locked(self.now())
        removed = self._ledger.remove_in_range(bounds)
        self._save_entries()
        logger.debug("Removed %d entries.", removed)
        return removed

    def _insert_anchored_locked(self, anchor: datetime, duration: timedelta) -> None:
        if duration <= timedelta(0):
            return
        self._ledger.append(TimeEntry(start=anchor, end=anchor + duration))
        self._save_entries()

    def _range(self, period: ReportingPeriod, now: datetime) -> Range:
        bounds = period_range(period, now, self.settings.week_start_day)
        if bounds is None:
            raise ValueError(f"{period.value} has no calendar range")
        return bounds

    # ------------------------------------------------------------------
    # Queries

    def snapshot(self) -> TrackerSnapshot:
        with self._lock:
            return TrackerSnapshot(
                is_running=self._session.is_running,
                current_session_start=self._session.current_session_start,
                elapsed_time=self._session.elapsed_time,
                total_accumulated_time=self._session.total_accumulated_time,
                entry_count=len(self._ledger),
            )

    def current_elapsed_display(self) -> str:
        with self._lock:
            return format_duration(self._session.displayed_time())

    def period_totals(self, period: ReportingPeriod) -> PeriodTotals:
        with self._lock:
            return self._totals_locked(period, self.now())

    def total_duration(self, period: ReportingPeriod) -> timedelta:
        return self.period_totals(period).duration

    def total_hours(self, period: ReportingPeriod) -> float:
        return self.period_totals(period).hours

    def earnings(self, period: ReportingPeriod) -> float:
        return self.period_totals(period).earnings

    def formatted_duration(self, period: ReportingPeriod) -> str:
        return format_duration(self.total_duration(period))

    def is_day_manually_edited(self, day: DateLike) -> bool:
        with self._lock:
            return self._ledger.is_day_manually_edited(day)

    def entries_for_day(self, day: DateLike) -> list[TimeEntry]:
        return self.entries_for_range(*day_range(day))

    def entries_for_range(self, start: datetime, end: datetime) -> list[TimeEntry]:
        """Ledger entries plus the live session, ordered by start."""
        with self._lock:
            entries = self._ledger.entries_in_range(start, end)
            active = self._session.active_entry()
            if active is not None and start <= active.start < end:
                entries.append(active)
        return sorted(entries, key=lambda entry: entry.start)

    def day_total(self, day: DateLike) -> timedelta:
        now = self.now()
        return sum_durations(self.entries_for_day(day), now)

    def day_totals(self, start: datetime, end: datetime) -> dict[datetime, timedelta]:
        with self._lock:
            return day_totals(self._ledger, self._session, start, end, self.now())

    def days_with_entries(self, month: datetime) -> set[int]:
        with self._lock:
            return days_with_entries(self._ledger, self._session, month)

    def month_totals(self, month: DateLike) -> MonthTotals:
        with self._lock:
            return month_totals(
                self._ledger, self._session, self.settings, month, self.now()
            )

    def _totals_locked(self, period: ReportingPeriod, now: datetime) -> PeriodTotals:
        return period_totals(
            period, self._ledger, self._session, self.settings, now, baseline=self._baseline
        )

    # ------------------------------------------------------------------
    # Persistence

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self._store.get(key)
        except STORE_ERRORS as exc:
            logger.warning("Could not read %s: %s", key, exc)
            return None

    def _read_duration(self, key: str) -> timedelta:
        value = self._read(key)
        if value is None:
            return timedelta(0)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return timedelta(seconds=value)
        logger.warning("Ignoring stored %s value %r.", key, value)
        return timedelta(0)

    def _write(self, key: str, value: Optional[Any]) -> None:
        try:
            if value is None:
                self._store.remove(key)
            else:
                self._store.set(key, value)
        except STORE_ERRORS as exc:
            self._report_store_failure(key, exc)

    def _report_store_failure(self, key: str, exc: Exception) -> None:
        logger.warning("Could not persist %s: %s", key, exc)
        self._queue(TrackerEventType.PERSISTENCE_FAILED, detail=key)

    def _save_entries(self) -> None:
        self._write(ENTRIES_KEY, self._ledger.to_payload())

    def _save_accumulated(self, now: datetime) -> None:
        self._write(ACCUMULATED_KEY, self._session.total_accumulated_time.total_seconds())
        self._write(ACCUMULATED_UPDATED_KEY, now.isoformat())

    def _save_session(self) -> None:
        start = self._session.current_session_start
        if start is None:
            self._write(SESSION_START_KEY, None)
            self._write(IS_RUNNING_KEY, None)
        else:
            self._write(SESSION_START_KEY, start.isoformat())
            self._write(IS_RUNNING_KEY, True)

    def _save_baseline(self) -> None:
        self._write(TOTAL_BASELINE_KEY, self._baseline.total_seconds())
