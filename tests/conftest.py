"""Pytest fixtures: manual clock and ticker, in-memory store, wired services."""
from datetime import date, datetime, timedelta

import pytest

from screen_balance.config import CoreSettings
from screen_balance.events import EventBus
from screen_balance.notifications import InMemoryNotificationScheduler
from screen_balance.reinforcement import RecentEventsSink
from screen_balance.services import build_services
from screen_balance.store import MemoryKeyValueStore

# A Wednesday, so the Monday-based week started two days earlier.
START = datetime(2025, 4, 9, 10, 0, 0)


class ManualClock:
    def __init__(self, now: datetime = START) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class ManualTicker:
    """Ticker that only fires when the test calls ``fire``."""

    def __init__(self) -> None:
        self.callback = None
        self.arm_count = 0

    @property
    def armed(self) -> bool:
        return self.callback is not None

    def arm(self, callback) -> None:
        self.arm_count += 1
        self.callback = callback

    def disarm(self) -> None:
        self.callback = None

    def fire(self) -> None:
        if self.callback is not None:
            self.callback()


class RecordingScheduler(InMemoryNotificationScheduler):
    def __init__(self, now) -> None:
        super().__init__(now=now)
        self.requested = []
        self.cancelled = []

    def schedule(self, request) -> None:
        self.requested.append(request)
        super().schedule(request)

    def cancel(self, identifiers) -> None:
        identifiers = list(identifiers)
        self.cancelled.append(identifiers)
        super().cancel(identifiers)

    def requested_ids(self):
        return [request.identifier for request in self.requested]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def ticker():
    return ManualTicker()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def scheduler(clock):
    return RecordingScheduler(now=clock.now)


@pytest.fixture
def settings():
    return CoreSettings(first_weekday=0)


@pytest.fixture
def sink():
    return RecentEventsSink()


@pytest.fixture
def make_services(store, clock, ticker, scheduler, settings, sink):
    def _make():
        return build_services(
            store,
            settings=settings,
            clock=clock,
            notifier=scheduler,
            ticker=ticker,
            sink=sink,
        )

    return _make


@pytest.fixture
def services(make_services):
    return make_services()
