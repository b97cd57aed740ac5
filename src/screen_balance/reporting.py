"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from .focus import FocusModeManager
from .models import DailyUsage, FocusSession
from .usage import UsageTracker


@dataclass(frozen=True, slots=True)
class FocusDayStats:
    day: date
    session_count: int
    total_minutes: int
    completion_rate: int


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, usage: UsageTracker, focus: Optional[FocusModeManager] = None) -> None:
        self.usage = usage
        self.focus = focus

    def print_daily_summary(self, day: date) -> None:
        row = self.usage.usage_for_date(day)
        if row is None or not row.app_stats:
            print("No usage recorded for the selected day.")
            return

        goal = self.usage.usage_goal
        print(f"Summary for {day.strftime('%Y-%m-%d')}")
        print("-" * 40)
        print(f"Usage time:  {format_duration(row.total_usage_time)}")
        print(f"Daily limit: {format_duration(goal.daily_usage_limit)}")
        print(f"Launches:    {row.total_launches}")
        print()

        top_entries = aggregate_by_app([row])
        if top_entries:
            print("Top apps:")
            for app_name, seconds in top_entries[:5]:
                launches = row.app_stats[app_name].launch_count
                print(f"  {app_name:<30} {format_duration(seconds)}  ({launches} launches)")

    def print_focus_stats(self, today: date) -> None:
        if self.focus is None:
            return
        sessions = self.focus.history()
        stats = focus_day_stats(sessions, today)
        print(f"Focus today: {stats.session_count} sessions, "
              f"{stats.total_minutes}m, {stats.completion_rate}% completed")
        print()
        print("Last 7 days:")
        for offset in range(6, -1, -1):
            day_stats = focus_day_stats(sessions, today - timedelta(days=offset))
            print(f"  {day_stats.day.strftime('%a %Y-%m-%d')}  {day_stats.total_minutes:>4}m")


def aggregate_by_app(rows: Iterable[DailyUsage]) -> list[tuple[str, float]]:
    totals: dict[str, float] = {}
    for row in rows:
        for app_name, stats in row.app_stats.items():
            totals[app_name] = totals.get(app_name, 0.0) + stats.total_usage_time
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def focus_day_stats(sessions: Iterable[FocusSession], day: date) -> FocusDayStats:
    """Session count, planned minutes and completion rate for sessions started on ``day``."""
    day_start = datetime.combine(day, datetime.min.time())
    day_end = day_start + timedelta(days=1)
    day_sessions = [s for s in sessions if day_start <= s.start_time < day_end]
    completed = sum(1 for s in day_sessions if s.is_completed)
    count = len(day_sessions)
    return FocusDayStats(
        day=day,
        session_count=count,
        total_minutes=int(sum(s.duration for s in day_sessions) / 60),
        completion_rate=completed * 100 // count if count else 0,
    )


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
