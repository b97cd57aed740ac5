"""Time sources for the engines."""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Local wall-clock time, naive like the rest of the stored timestamps."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()
