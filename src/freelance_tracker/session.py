"""Timer state machine for the in-progress session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .models import TimeEntry
from .periods import start_of_day


@dataclass(slots=True)
class SessionState:
    """Idle when ``current_session_start`` is ``None``, running otherwise.

    ``total_accumulated_time`` holds today's paused sessions so the live
    display does not need the ledger.
    """

    current_session_start: Optional[datetime] = None
    elapsed_time: timedelta = field(default_factory=timedelta)
    total_accumulated_time: timedelta = field(default_factory=timedelta)

    @property
    def is_running(self) -> bool:
        return self.current_session_start is not None

    def start(self, now: datetime) -> bool:
        if self.is_running:
            return False
        self.current_session_start = now
        self.elapsed_time = timedelta(0)
        return True

    def pause(self, now: datetime) -> Optional[TimeEntry]:
        """Finish the running session and return it as a completed entry."""
        if self.current_session_start is None:
            return None
        entry = TimeEntry(start=self.current_session_start, end=now)
        self.total_accumulated_time += now - self.current_session_start
        self.current_session_start = None
        self.elapsed_time = timedelta(0)
        return entry

    def reset(self) -> None:
        self.current_session_start = None
        self.elapsed_time = timedelta(0)
        self.total_accumulated_time = timedelta(0)

    def tick(self, now: datetime) -> list[TimeEntry]:
        """Refresh elapsed time and split the session at each passed midnight.

        Returns the entries cut off by the split, oldest first.
        """
        if self.current_session_start is None:
            return []
        self.elapsed_time = now - self.current_session_start
        splits: list[TimeEntry] = []
        while self.current_session_start.date() < now.date():
            midnight = start_of_day(self.current_session_start) + timedelta(days=1)
            splits.append(TimeEntry(start=self.current_session_start, end=midnight))
            # The finished day lives on in the split entry; the new day starts from zero.
            self.current_session_start = midnight
            self.elapsed_time = now - midnight
            self.total_accumulated_time = timedelta(0)
        return splits

    def active_entry(self) -> Optional[TimeEntry]:
        if self.current_session_start is None:
            return None
        return TimeEntry(start=self.current_session_start, is_active=True)

    def displayed_time(self) -> timedelta:
        """Accumulated time plus the live session."""
        if self.is_running:
            return self.total_accumulated_time + self.elapsed_time
        return self.total_accumulated_time
