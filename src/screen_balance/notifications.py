"""Deferred notification requests issued by the focus manager."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)

FOCUS_START = "focusStart"
FOCUS_HALFWAY = "focusHalfway"
FOCUS_ALMOST_DONE = "focusAlmostDone"
FOCUS_COMPLETE = "focusComplete"
FOCUS_REMINDER = "focusReminder"
SCHEDULED_FOCUS_START = "scheduledFocusStart"

SESSION_NOTIFICATION_IDS: tuple[str, ...] = (
    FOCUS_START,
    FOCUS_HALFWAY,
    FOCUS_ALMOST_DONE,
    FOCUS_COMPLETE,
    FOCUS_REMINDER,
    SCHEDULED_FOCUS_START,
)


@dataclass(frozen=True, slots=True)
class NotificationRequest:
    """A fire-once alert, either relative (``delay``) or absolute (``fire_at``)."""

    identifier: str
    title: str
    body: str
    delay: Optional[timedelta] = None
    fire_at: Optional[datetime] = None

    def resolve(self, now: datetime) -> datetime:
        if self.fire_at is not None:
            return self.fire_at
        return now + (self.delay or timedelta(0))


class NotificationScheduler(Protocol):
    def schedule(self, request: NotificationRequest) -> None: ...

    def cancel(self, identifiers: Iterable[str]) -> None: ...


class InMemoryNotificationScheduler:
    """Keeps pending requests by identifier; a later request replaces an earlier one."""

    def __init__(self, now=datetime.now) -> None:
        self._now = now
        self._pending: dict[str, tuple[datetime, NotificationRequest]] = {}
        self._lock = threading.Lock()

    def schedule(self, request: NotificationRequest) -> None:
        fire_at = request.resolve(self._now())
        with self._lock:
            self._pending[request.identifier] = (fire_at, request)
        logger.debug("Notification %s scheduled for %s", request.identifier, fire_at)

    def cancel(self, identifiers: Iterable[str]) -> None:
        with self._lock:
            for identifier in identifiers:
                self._pending.pop(identifier, None)

    def pending(self) -> list[tuple[datetime, NotificationRequest]]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda item: item[0])

    def pop_due(self, now: Optional[datetime] = None) -> list[NotificationRequest]:
        """Remove and return every request whose fire time has been reached."""
        moment = now or self._now()
        with self._lock:
            due = [
                (fire_at, identifier)
                for identifier, (fire_at, _) in self._pending.items()
                if fire_at <= moment
            ]
            due.sort()
            fired = [self._pending.pop(identifier)[1] for _, identifier in due]
        for request in fired:
            logger.info("%s: %s", request.title, request.body)
        return fired
