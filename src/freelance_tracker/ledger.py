"""Collection of completed time entries."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Iterator, Optional

from .models import TimeEntry
from .periods import DateLike, Range, day_range, in_range

logger = logging.getLogger(__name__)


class EntryLedger:
    """Insertion-ordered entries, changed only by appends and bulk replacement."""

    def __init__(self, entries: Optional[Iterable[TimeEntry]] = None) -> None:
        self._entries: list[TimeEntry] = list(entries or [])

    def __iter__(self) -> Iterator[TimeEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[TimeEntry, ...]:
        return tuple(self._entries)

    def append(self, entry: TimeEntry) -> None:
        if entry.is_active:
            raise ValueError("the in-progress session is not stored in the ledger")
        self._entries.append(entry)

    def replace(self, entries: Iterable[TimeEntry]) -> None:
        self._entries = list(entries)

    def clear(self) -> None:
        self._entries = []

    def entries_in_range(self, start: datetime, end: datetime) -> list[TimeEntry]:
        return [entry for entry in self._entries if start <= entry.start < end]

    def entries_for_day(self, day: DateLike) -> list[TimeEntry]:
        return self.entries_in_range(*day_range(day))

    def remove_in_range(self, bounds: Optional[Range]) -> int:
        """Drop entries starting inside ``bounds`` (all when ``None``)."""
        kept = [entry for entry in self._entries if not in_range(entry.start, bounds)]
        removed = len(self._entries) - len(kept)
        self.replace(kept)
        return removed

    def is_day_manually_edited(self, day: DateLike) -> bool:
        day_start, _ = day_range(day)
        entries = self.entries_for_day(day)
        return len(entries) == 1 and entries[0].start == day_start

    def to_payload(self) -> list[dict[str, Any]]:
        return [entry.to_payload() for entry in self._entries]

    @classmethod
    def from_payload(cls, payload: Any) -> "EntryLedger":
        """Rebuild a ledger, skipping records that cannot be read."""
        if payload is None:
            return cls()
        if not isinstance(payload, list):
            logger.warning("Stored entries are not a list; starting with an empty ledger.")
            return cls()
        entries: list[TimeEntry] = []
        for index, raw in enumerate(payload):
            try:
                entry = TimeEntry.from_payload(raw)
            except ValueError as exc:
                logger.warning("Discarding unreadable entry #%d: %s", index, exc)
                continue
            if entry.is_active:
                logger.warning("Discarding stored active entry %s.", entry.id)
                continue
            entries.append(entry)
        return cls(entries)
