"""Sources of the current time."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in naive local time, truncated to whole seconds."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)
