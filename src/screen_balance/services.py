"""Explicit construction of the engines and their collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .clock import Clock, SystemClock
from .config import CoreSettings
from .events import EventBus
from .focus import FocusModeManager
from .notifications import InMemoryNotificationScheduler, NotificationScheduler
from .reinforcement import (
    AchievementSink,
    LoggingAchievementSink,
    RecentEventsSink,
    ReinforcementEvent,
    ReinforcementTrigger,
)
from .store import KeyValueStore, SqliteKeyValueStore
from .ticker import ThreadTicker, Ticker
from .usage import UsageTracker


class FanOutSink:
    def __init__(self, *sinks: AchievementSink) -> None:
        self._sinks = sinks

    def handle(self, event: ReinforcementEvent) -> None:
        for sink in self._sinks:
            sink.handle(event)


@dataclass(slots=True)
class CoreServices:
    store: KeyValueStore
    events: EventBus
    notifier: NotificationScheduler
    ticker: Ticker
    focus: FocusModeManager
    usage: UsageTracker
    reinforcement: ReinforcementTrigger
    recent_events: RecentEventsSink
    settings: CoreSettings
    clock: Clock

    def shutdown(self) -> None:
        self.ticker.disarm()
        close = getattr(self.store, "close", None)
        if close is not None:
            close()


def build_services(
    store: KeyValueStore,
    *,
    settings: Optional[CoreSettings] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[NotificationScheduler] = None,
    ticker: Optional[Ticker] = None,
    sink: Optional[AchievementSink] = None,
) -> CoreServices:
    """Wire both engines to one event bus; the reinforcement layer subscribes first."""
    resolved_settings = settings or CoreSettings()
    resolved_clock = clock or SystemClock()
    events = EventBus()
    recent = RecentEventsSink(maxlen=resolved_settings.recent_events)
    resolved_notifier = notifier or InMemoryNotificationScheduler(now=resolved_clock.now)
    resolved_ticker = ticker or ThreadTicker(resolved_settings.tick_interval)

    usage = UsageTracker(store, events, clock=resolved_clock, settings=resolved_settings)
    trigger = ReinforcementTrigger(
        usage,
        FanOutSink(recent, sink or LoggingAchievementSink()),
        clock=resolved_clock,
        settings=resolved_settings,
    )
    trigger.attach(events)
    focus = FocusModeManager(
        store,
        resolved_notifier,
        resolved_ticker,
        events,
        clock=resolved_clock,
        settings=resolved_settings,
    )
    return CoreServices(
        store=store,
        events=events,
        notifier=resolved_notifier,
        ticker=resolved_ticker,
        focus=focus,
        usage=usage,
        reinforcement=trigger,
        recent_events=recent,
        settings=resolved_settings,
        clock=resolved_clock,
    )


def open_services(db_path: Path, settings: Optional[CoreSettings] = None) -> CoreServices:
    return build_services(SqliteKeyValueStore(db_path), settings=settings)
