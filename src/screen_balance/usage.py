"""Per-application usage tracking rolled up into daily and weekly aggregates."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Optional, TypeVar

from .clock import Clock, SystemClock
from .config import CoreSettings
from .events import EventBus, UsageChanged
from .models import (
    DailyUsage,
    PendingAppSession,
    UsageGoal,
    WeeklyUsageSummary,
    unique_names,
)
from .store import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

USAGE_HISTORY_KEY = "usageHistory"
WEEKLY_USAGE_KEY = "weeklyUsage"
USAGE_GOAL_KEY = "usageGoal"
PENDING_SESSION_KEY = "pendingAppSession"

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class GoalProgress:
    current_usage: float
    limit: float
    percent_of_limit: float


@dataclass(frozen=True, slots=True)
class ReductionProgress:
    current_reduction: float
    target: float
    percent_of_target: float


def week_start(day: date, first_weekday: int) -> date:
    """First day of the week containing ``day``."""
    return day - timedelta(days=(day.weekday() - first_weekday) % 7)


def _load_list(store: KeyValueStore, key: str, loader: Callable[[Any], T]) -> list[T]:
    raw = read_json(store, key)
    if raw is None:
        return []
    try:
        if not isinstance(raw, list):
            raise TypeError(f"{key} must be a list")
        return [loader(item) for item in raw]
    except (KeyError, TypeError, ValueError):
        logger.warning("Discarding malformed %s data.", key)
        return []


def _load_one(store: KeyValueStore, key: str, loader: Callable[[Any], T]) -> Optional[T]:
    raw = read_json(store, key)
    if raw is None:
        return None
    try:
        return loader(raw)
    except (KeyError, TypeError, ValueError):
        logger.warning("Discarding malformed %s record.", key)
        return None


class UsageTracker:
    """Tracks one open app at a time and aggregates usage against a goal."""

    def __init__(
        self,
        store: KeyValueStore,
        events: EventBus,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[CoreSettings] = None,
    ) -> None:
        self._store = store
        self._events = events
        self._clock = clock or SystemClock()
        self._settings = settings or CoreSettings()
        self._lock = threading.RLock()

        self._history = self._merge_days(
            _load_list(store, USAGE_HISTORY_KEY, DailyUsage.from_record)
        )
        self._summaries = _load_list(store, WEEKLY_USAGE_KEY, WeeklyUsageSummary.from_record)
        self._pending = _load_one(store, PENDING_SESSION_KEY, PendingAppSession.from_record)
        goal = _load_one(store, USAGE_GOAL_KEY, UsageGoal.from_record)
        if goal is None:
            goal = UsageGoal()
            write_json(store, USAGE_GOAL_KEY, goal.to_record())
        self._goal = goal

    # ---------- Recording ----------

    def record_app_open(self, app_name: str) -> bool:
        """Start tracking ``app_name``; rejected while any app is still open."""
        with self._lock:
            if self._pending is not None:
                logger.debug(
                    "Ignoring open of %s; %s is still open.",
                    app_name,
                    self._pending.app_name,
                )
                return False

            now = self._clock.now()
            self._pending = PendingAppSession(app_name=app_name, start_time=now)
            today = self._today_row(create=True)
            today.stats_for(app_name).launch_count += 1
            self._save_pending()
            self._save_history()
        self._events.emit(UsageChanged(kind="open", app_name=app_name))
        return True

    def record_app_close(self, app_name: str) -> bool:
        """Stop tracking ``app_name`` and add the elapsed time to today."""
        with self._lock:
            pending = self._pending
            if pending is None or pending.app_name != app_name:
                logger.debug("No open session for %s; close ignored.", app_name)
                return False

            elapsed = max(0.0, (self._clock.now() - pending.start_time).total_seconds())
            # Sessions spanning midnight count entirely toward the closing day.
            today = self._today_row(create=True)
            today.stats_for(app_name).total_usage_time += elapsed
            self._pending = None
            self._save_pending()
            self._save_history()
            logger.debug("Recorded %.1fs of %s.", elapsed, app_name)
        self._events.emit(UsageChanged(kind="close", app_name=app_name))
        return True

    def pending_session(self) -> Optional[PendingAppSession]:
        with self._lock:
            return self._pending

    def cancel_pending_session(self) -> None:
        with self._lock:
            if self._pending is None:
                return
            app_name = self._pending.app_name
            self._pending = None
            self._save_pending()
        self._events.emit(UsageChanged(kind="cancel", app_name=app_name))

    # ---------- Goals ----------

    @property
    def usage_goal(self) -> UsageGoal:
        with self._lock:
            return UsageGoal(
                daily_usage_limit=self._goal.daily_usage_limit,
                weekly_reduction_target=self._goal.weekly_reduction_target,
                focus_apps=list(self._goal.focus_apps),
            )

    def update_usage_goal(
        self,
        daily_limit: Optional[float] = None,
        weekly_reduction: Optional[float] = None,
        focus_apps: Optional[Iterable[str]] = None,
    ) -> UsageGoal:
        if daily_limit is not None and daily_limit < 0:
            raise ValueError("daily limit cannot be negative")
        with self._lock:
            if daily_limit is not None:
                self._goal.daily_usage_limit = float(daily_limit)
            if weekly_reduction is not None:
                self._goal.weekly_reduction_target = float(weekly_reduction)
            if focus_apps is not None:
                self._goal.focus_apps = unique_names(focus_apps)
            write_json(self._store, USAGE_GOAL_KEY, self._goal.to_record())
            goal = self.usage_goal
        self._events.emit(UsageChanged(kind="goal"))
        return goal

    def goal_progress(self) -> GoalProgress:
        with self._lock:
            current = self._today_total()
            limit = self._goal.daily_usage_limit
        percent = (current / limit) * 100 if limit > 0 else 0.0
        return GoalProgress(current_usage=current, limit=limit, percent_of_limit=percent)

    def weekly_reduction_progress(self) -> ReductionProgress:
        with self._lock:
            current = (
                self._summaries[-1].usage_reduction_percentage if self._summaries else 0.0
            )
            target = self._goal.weekly_reduction_target * 100
        percent = (current / target) * 100 if target > 0 else 0.0
        return ReductionProgress(
            current_reduction=current, target=target, percent_of_target=percent
        )

    def has_exceeded_daily_limit(self) -> bool:
        with self._lock:
            return self._today_total() > self._goal.daily_usage_limit

    # ---------- Weekly summaries ----------

    def generate_weekly_summary(self) -> Optional[WeeklyUsageSummary]:
        """Append a summary of the current week; ``None`` when the week has no usage."""
        with self._lock:
            today = self._clock.today()
            start = week_start(today, self._settings.first_weekday)
            days = [row for row in self._history if start <= row.date <= today]
            if not days:
                logger.debug("No usage recorded since %s; no weekly summary.", start)
                return None

            total = sum(row.total_usage_time for row in days)
            app_totals: defaultdict[str, float] = defaultdict(float)
            for row in days:
                for name, stats in row.app_stats.items():
                    app_totals[name] += stats.total_usage_time
            most_used = "None"
            if app_totals:
                most_used = max(app_totals.items(), key=lambda item: item[1])[0]

            reduction = 0.0
            if self._summaries:
                previous = self._summaries[-1]
                if previous.week_start_date == start - timedelta(days=7):
                    if previous.total_usage_time > 0:
                        reduction = (
                            (previous.total_usage_time - total)
                            / previous.total_usage_time
                            * 100
                        )

            summary = WeeklyUsageSummary(
                week_start_date=start,
                total_usage_time=total,
                daily_average_time=total / len(days),
                most_used_app=most_used,
                usage_reduction_percentage=reduction,
            )
            self._summaries.append(summary)
            write_json(
                self._store,
                WEEKLY_USAGE_KEY,
                [item.to_record() for item in self._summaries],
            )
            logger.info(
                "Weekly summary for %s: %.0fs total, %.1f%% reduction.",
                start,
                total,
                reduction,
            )
        self._events.emit(UsageChanged(kind="weekly_summary"))
        return summary

    def weekly_summaries(self) -> list[WeeklyUsageSummary]:
        with self._lock:
            return list(self._summaries)

    # ---------- Historical queries ----------

    def today_usage(self) -> Optional[DailyUsage]:
        with self._lock:
            return self._today_row(create=False)

    def usage_for_date(self, day: date) -> Optional[DailyUsage]:
        with self._lock:
            for row in self._history:
                if row.date == day:
                    return row
            return None

    def usage_for_range(self, start: date, end: date) -> list[DailyUsage]:
        """Rows dated from ``start`` through ``end`` inclusive, oldest first."""
        with self._lock:
            return sorted(
                (row for row in self._history if start <= row.date <= end),
                key=lambda row: row.date,
            )

    def usage_history(self, days: int) -> list[DailyUsage]:
        """Rows from the trailing ``days`` days, including today."""
        today = self._clock.today()
        return self.usage_for_range(today - timedelta(days=days), today)

    def dates_with_usage(self) -> list[date]:
        with self._lock:
            return sorted(row.date for row in self._history if row.app_stats)

    def usage_trends(self, period: int) -> list[tuple[date, float]]:
        """Per-day totals for the last ``period`` days plus today, zero-filled."""
        today = self._clock.today()
        with self._lock:
            totals = {row.date: row.total_usage_time for row in self._history}
        return [
            (day, totals.get(day, 0.0))
            for day in (today - timedelta(days=offset) for offset in range(period, -1, -1))
        ]

    # ---------- Internals ----------

    def _today_row(self, *, create: bool) -> Optional[DailyUsage]:
        today = self._clock.today()
        for row in self._history:
            if row.date == today:
                return row
        if not create:
            return None
        row = DailyUsage(date=today)
        self._history.append(row)
        return row

    def _today_total(self) -> float:
        row = self._today_row(create=False)
        return row.total_usage_time if row else 0.0

    @staticmethod
    def _merge_days(rows: list[DailyUsage]) -> list[DailyUsage]:
        merged: dict[date, DailyUsage] = {}
        for row in rows:
            # A later row for the same day replaces the earlier one.
            merged[row.date] = row
        return list(merged.values())

    def _save_history(self) -> None:
        write_json(
            self._store,
            USAGE_HISTORY_KEY,
            [row.to_record() for row in self._history],
        )

    def _save_pending(self) -> None:
        write_json(
            self._store,
            PENDING_SESSION_KEY,
            self._pending.to_record() if self._pending else None,
        )
