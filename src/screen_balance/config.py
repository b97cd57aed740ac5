"""Configuration models and helpers for the focus and usage engines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(slots=True)
class CoreSettings:
    """Runtime configuration shared by the focus manager and usage tracker."""

    tick_interval: timedelta = timedelta(seconds=1)
    reminder_lead: timedelta = timedelta(minutes=5)
    almost_done_lead: timedelta = timedelta(seconds=60)
    almost_done_min_duration: timedelta = timedelta(seconds=120)
    start_notification_delay: timedelta = timedelta(seconds=2)
    first_weekday: int = 0
    timer_event_every: int = 1
    improvement_threshold: float = 5.0
    recent_events: int = 50

    @classmethod
    def from_values(
        cls,
        tick_seconds: float = 1.0,
        reminder_minutes: float = 5.0,
        first_weekday: int | None = None,
        timer_event_every: int | None = None,
    ) -> "CoreSettings":
        weekday = first_weekday if first_weekday is not None else 0
        if not 0 <= weekday <= 6:
            raise ValueError(f"first_weekday must be 0-6, got {weekday}")
        every = timer_event_every if timer_event_every is not None else 1
        return cls(
            tick_interval=timedelta(seconds=tick_seconds),
            reminder_lead=timedelta(minutes=reminder_minutes),
            first_weekday=weekday,
            timer_event_every=max(1, every),
        )
