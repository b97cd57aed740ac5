"""Threshold checks that feed the achievement and celebration collaborator.

``ReinforcementTrigger`` keeps no state of its own. It listens on the event
bus, reads the two engines through their public queries and forwards one
``ReinforcementEvent`` per threshold crossing to an ``AchievementSink``.
Sending the same event twice is allowed; sinks de-duplicate if they care.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Protocol

from .clock import Clock, SystemClock
from .config import CoreSettings
from .events import EventBus, FocusStateChanged, UsageChanged
from .usage import UsageTracker

logger = logging.getLogger(__name__)

DAILY_GOAL = "daily_goal"
DAILY_IMPROVEMENT = "daily_improvement"
STREAK_CONTINUED = "streak_continued"
STREAK_BROKEN = "streak_broken"
WEEKLY_REDUCTION = "weekly_reduction"
WEEKLY_TARGET_MET = "weekly_target_met"
FOCUS_SESSION_COMPLETED = "focus_session_completed"


@dataclass(frozen=True, slots=True)
class ReinforcementEvent:
    kind: str
    value: float
    threshold: Optional[float]
    occurred_at: datetime


class AchievementSink(Protocol):
    def handle(self, event: ReinforcementEvent) -> None: ...


class LoggingAchievementSink:
    def handle(self, event: ReinforcementEvent) -> None:
        logger.info("Reinforcement %s value=%.2f threshold=%s", event.kind, event.value, event.threshold)


class RecentEventsSink:
    """Keeps the most recent events in memory for the dashboard."""

    def __init__(self, maxlen: int = 50) -> None:
        self._events: deque[ReinforcementEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def handle(self, event: ReinforcementEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self) -> list[ReinforcementEvent]:
        with self._lock:
            return list(self._events)


class ReinforcementTrigger:
    def __init__(
        self,
        usage: UsageTracker,
        sink: AchievementSink,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[CoreSettings] = None,
    ) -> None:
        self._usage = usage
        self._sink = sink
        self._clock = clock or SystemClock()
        self._settings = settings or CoreSettings()

    def attach(self, events: EventBus) -> None:
        events.subscribe(UsageChanged, self.on_usage_changed)
        events.subscribe(FocusStateChanged, self.on_focus_state_changed)

    def on_usage_changed(self, event: UsageChanged) -> None:
        if event.kind == "close":
            self.check_daily_goal()
        elif event.kind == "weekly_summary":
            self.check_weekly_reduction()

    def on_focus_state_changed(self, event: FocusStateChanged) -> None:
        session = event.ended_session
        if session is not None and session.is_completed:
            self._forward(FOCUS_SESSION_COMPLETED, session.duration, None)

    def check_daily_goal(self) -> None:
        progress = self._usage.goal_progress()
        self._forward(DAILY_GOAL, progress.current_usage, progress.limit)

        if self._usage.has_exceeded_daily_limit():
            self._forward(STREAK_BROKEN, progress.current_usage, progress.limit)
        else:
            streak = self.days_under_limit(self._clock.today(), progress.limit)
            self._forward(STREAK_CONTINUED, float(streak), progress.limit)

        self._check_improvement(progress.current_usage)

    def check_weekly_reduction(self) -> None:
        progress = self._usage.weekly_reduction_progress()
        self._forward(WEEKLY_REDUCTION, progress.current_reduction, progress.target)
        if progress.target > 0 and progress.current_reduction >= progress.target:
            self._forward(WEEKLY_TARGET_MET, progress.current_reduction, progress.target)

    def days_under_limit(self, through: date, limit: float) -> int:
        """Consecutive days ending at ``through`` with usage at or under ``limit``."""
        streak = 0
        day = through
        while True:
            row = self._usage.usage_for_date(day)
            if row is None or row.total_usage_time > limit:
                return streak
            streak += 1
            day -= timedelta(days=1)

    def _check_improvement(self, today_usage: float) -> None:
        yesterday = self._usage.usage_for_date(self._clock.today() - timedelta(days=1))
        if yesterday is None:
            return
        previous = yesterday.total_usage_time
        if previous <= 0 or today_usage >= previous:
            return
        reduction = (previous - today_usage) / previous * 100
        if reduction >= self._settings.improvement_threshold:
            self._forward(DAILY_IMPROVEMENT, reduction, self._settings.improvement_threshold)

    def _forward(self, kind: str, value: float, threshold: Optional[float]) -> None:
        self._sink.handle(
            ReinforcementEvent(
                kind=kind,
                value=value,
                threshold=threshold,
                occurred_at=self._clock.now(),
            )
        )
