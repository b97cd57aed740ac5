"""Domain models for focus sessions and recorded app usage."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional


class FocusModeState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    SCHEDULED = "scheduled"


def _new_session_id() -> str:
    return str(uuid.uuid4())


def _parse_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"expected ISO timestamp string, got {type(value).__name__}")
    return datetime.fromisoformat(value)


def _parse_date(value: Any) -> date:
    if not isinstance(value, str):
        raise TypeError(f"expected ISO date string, got {type(value).__name__}")
    return date.fromisoformat(value)


def _parse_names(value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise TypeError("expected a list of application names")
    return unique_names(value)


def unique_names(names: Any) -> list[str]:
    """Drop duplicates while keeping first-seen order."""
    seen: list[str] = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return seen


@dataclass(slots=True)
class FocusSession:
    """A time-boxed period during which a set of applications is blocked."""

    start_time: datetime
    duration: float
    blocked_apps: list[str] = field(default_factory=list)
    is_completed: bool = False
    actual_end_time: Optional[datetime] = None
    id: str = field(default_factory=_new_session_id)

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(seconds=self.duration)

    def is_active(self, now: datetime) -> bool:
        if self.is_completed or self.actual_end_time is not None:
            return False
        return self.start_time <= now < self.end_time

    def remaining_time(self, now: datetime) -> float:
        if not self.is_active(now):
            return 0.0
        return max(0.0, (self.end_time - now).total_seconds())

    def percent_complete(self, now: datetime) -> float:
        elapsed = self.duration - self.remaining_time(now)
        return min(1.0, max(0.0, elapsed / self.duration))

    def formatted_remaining_time(self, now: datetime) -> str:
        remaining = int(self.remaining_time(now))
        minutes = (remaining % 3600) // 60
        seconds = remaining % 60
        return f"{minutes:02d}:{seconds:02d}"

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "duration": self.duration,
            "blocked_apps": list(self.blocked_apps),
            "is_completed": self.is_completed,
            "actual_end_time": (
                self.actual_end_time.isoformat() if self.actual_end_time else None
            ),
        }

    @classmethod
    def from_record(cls, record: Any) -> "FocusSession":
        if not isinstance(record, dict):
            raise TypeError("focus session record must be an object")
        duration = float(record["duration"])
        if duration <= 0:
            raise ValueError(f"stored session has non-positive duration {duration}")
        actual_end = record.get("actual_end_time")
        return cls(
            id=str(record["id"]),
            start_time=_parse_datetime(record["start_time"]),
            duration=duration,
            blocked_apps=_parse_names(record.get("blocked_apps", [])),
            is_completed=bool(record.get("is_completed", False)),
            actual_end_time=_parse_datetime(actual_end) if actual_end else None,
        )


@dataclass(slots=True)
class UsageStats:
    """Launch count and cumulative usage of one app on one day."""

    app_name: str
    launch_count: int = 0
    total_usage_time: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "app_name": self.app_name,
            "launch_count": self.launch_count,
            "total_usage_time": self.total_usage_time,
        }

    @classmethod
    def from_record(cls, record: Any) -> "UsageStats":
        if not isinstance(record, dict):
            raise TypeError("usage stats record must be an object")
        launches = int(record.get("launch_count", 0))
        usage = float(record.get("total_usage_time", 0.0))
        if launches < 0 or usage < 0:
            raise ValueError("usage stats cannot be negative")
        return cls(
            app_name=str(record["app_name"]),
            launch_count=launches,
            total_usage_time=usage,
        )


@dataclass(slots=True)
class DailyUsage:
    """Per-app usage for a single calendar day."""

    date: date
    app_stats: dict[str, UsageStats] = field(default_factory=dict)

    @property
    def total_usage_time(self) -> float:
        return sum(stats.total_usage_time for stats in self.app_stats.values())

    @property
    def total_launches(self) -> int:
        return sum(stats.launch_count for stats in self.app_stats.values())

    def stats_for(self, app_name: str) -> UsageStats:
        stats = self.app_stats.get(app_name)
        if stats is None:
            stats = UsageStats(app_name=app_name)
            self.app_stats[app_name] = stats
        return stats

    def to_record(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "total_usage_time": self.total_usage_time,
            "app_stats": {
                name: stats.to_record() for name, stats in self.app_stats.items()
            },
        }

    @classmethod
    def from_record(cls, record: Any) -> "DailyUsage":
        if not isinstance(record, dict):
            raise TypeError("daily usage record must be an object")
        raw_stats = record.get("app_stats", {})
        if not isinstance(raw_stats, dict):
            raise TypeError("app_stats must be an object")
        # The stored total is informational; it is always rebuilt from app_stats.
        return cls(
            date=_parse_date(record["date"]),
            app_stats={
                str(name): UsageStats.from_record(stats)
                for name, stats in raw_stats.items()
            },
        )


@dataclass(slots=True)
class PendingAppSession:
    """The single app the tracker believes is currently open."""

    app_name: str
    start_time: datetime

    def to_record(self) -> dict[str, Any]:
        return {"app_name": self.app_name, "start_time": self.start_time.isoformat()}

    @classmethod
    def from_record(cls, record: Any) -> "PendingAppSession":
        if not isinstance(record, dict):
            raise TypeError("pending session record must be an object")
        return cls(
            app_name=str(record["app_name"]),
            start_time=_parse_datetime(record["start_time"]),
        )


@dataclass(slots=True)
class WeeklyUsageSummary:
    """Rollup of one week of daily usage."""

    week_start_date: date
    total_usage_time: float
    daily_average_time: float
    most_used_app: str
    usage_reduction_percentage: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "week_start_date": self.week_start_date.isoformat(),
            "total_usage_time": self.total_usage_time,
            "daily_average_time": self.daily_average_time,
            "most_used_app": self.most_used_app,
            "usage_reduction_percentage": self.usage_reduction_percentage,
        }

    @classmethod
    def from_record(cls, record: Any) -> "WeeklyUsageSummary":
        if not isinstance(record, dict):
            raise TypeError("weekly summary record must be an object")
        return cls(
            week_start_date=_parse_date(record["week_start_date"]),
            total_usage_time=float(record["total_usage_time"]),
            daily_average_time=float(record["daily_average_time"]),
            most_used_app=str(record["most_used_app"]),
            usage_reduction_percentage=float(
                record.get("usage_reduction_percentage", 0.0)
            ),
        )


@dataclass(slots=True)
class UsageGoal:
    """User-editable daily limit and weekly reduction target."""

    daily_usage_limit: float = 3600.0
    weekly_reduction_target: float = 0.05
    focus_apps: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {
            "daily_usage_limit": self.daily_usage_limit,
            "weekly_reduction_target": self.weekly_reduction_target,
            "focus_apps": list(self.focus_apps),
        }

    @classmethod
    def from_record(cls, record: Any) -> "UsageGoal":
        if not isinstance(record, dict):
            raise TypeError("usage goal record must be an object")
        limit = float(record.get("daily_usage_limit", 3600.0))
        if limit < 0:
            raise ValueError("daily usage limit cannot be negative")
        return cls(
            daily_usage_limit=limit,
            weekly_reduction_target=float(record.get("weekly_reduction_target", 0.05)),
            focus_apps=_parse_names(record.get("focus_apps", [])),
        )
