from datetime import datetime, timedelta

import pytest

from freelance_tracker.db import MemoryStore
from freelance_tracker.tracker import TimeTracker

# Wednesday
WEDNESDAY = datetime(2025, 9, 3, 9, 0)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture
def clock():
    return ManualClock(WEDNESDAY)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_tracker(store, clock):
    """Build trackers sharing the same store and clock (simulates restarts)."""

    def factory(**kwargs):
        kwargs.setdefault("clock", clock)
        return TimeTracker(kwargs.pop("store", store), **kwargs)

    return factory


@pytest.fixture
def tracker(make_tracker):
    return make_tracker()


@pytest.fixture
def events(tracker):
    received = []
    tracker.subscribe(received.append)
    return received
