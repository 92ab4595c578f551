"""Domain models for tracked time."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional


class ReportingPeriod(str, Enum):
    """Calendar-derived ranges used for aggregation."""

    TODAY = "today"
    THIS_WEEK = "this-week"
    LAST_WEEK = "last-week"
    THIS_MONTH = "this-month"
    TOTAL = "total"


@dataclass(frozen=True, slots=True)
class TimeEntry:
    """A finished (or synthesized, in-progress) block of tracked time.

    Entries whose ``end`` lies before ``start`` are subtractive adjustments
    and report a negative duration.
    """

    start: datetime
    end: Optional[datetime] = None
    is_active: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.end is not None and self.is_active:
            raise ValueError("a completed entry cannot be active")

    def duration(self, now: datetime) -> timedelta:
        if self.end is not None:
            return self.end - self.start
        if self.is_active:
            return now - self.start
        return timedelta(0)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startDate": self.start.isoformat(),
            "endDate": self.end.isoformat() if self.end is not None else None,
            "isActive": self.is_active,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "TimeEntry":
        """Build an entry from its stored form, raising ``ValueError`` if unusable."""
        if not isinstance(payload, dict):
            raise ValueError(f"expected an object, got {type(payload).__name__}")
        entry_id = payload.get("id")
        if not isinstance(entry_id, str) or not entry_id:
            raise ValueError("entry id is missing")
        start = parse_timestamp(payload.get("startDate"))
        raw_end = payload.get("endDate")
        end = parse_timestamp(raw_end) if raw_end is not None else None
        is_active = bool(payload.get("isActive", False))
        return cls(start=start, end=end, is_active=is_active, id=entry_id)


def parse_timestamp(value: Any) -> datetime:
    """Accept ISO-8601 strings or epoch seconds; return naive local time."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"epoch out of range: {value!r}") from exc
    if isinstance(value, str):
        text = value.strip()
        # fromisoformat only learned the "Z" suffix in 3.11.
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    raise ValueError(f"unsupported timestamp: {value!r}")
