"""Focus session state machine.

The manager owns at most one active session, at most one scheduled session
and an append-only history. Every mutation is persisted to the key-value
store before the matching ``FocusStateChanged`` event is emitted, so
observers always see durable state.

Reconciliation (``reconcile``) runs once on construction and then on every
ticker wake-up while a session is active:

1. an active session whose window has closed is ended as completed;
2. a still-running active session keeps the ticker armed;
3. a scheduled session whose window is open is promoted to active, and one
   whose window has already passed is discarded.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, TypeVar

from .clock import Clock, SystemClock
from .config import CoreSettings
from .events import EventBus, FocusStateChanged, FocusTimerUpdated
from .models import FocusModeState, FocusSession, unique_names
from .notifications import (
    FOCUS_ALMOST_DONE,
    FOCUS_COMPLETE,
    FOCUS_HALFWAY,
    FOCUS_REMINDER,
    FOCUS_START,
    SCHEDULED_FOCUS_START,
    SESSION_NOTIFICATION_IDS,
    NotificationRequest,
    NotificationScheduler,
)
from .store import KeyValueStore, read_json, write_json
from .ticker import Ticker

logger = logging.getLogger(__name__)

DISTRACTING_APPS_KEY = "distractingApps"
FOCUS_SESSIONS_KEY = "focusSessions"
ACTIVE_SESSION_KEY = "activeFocusSession"
SCHEDULED_SESSION_KEY = "scheduledFocusSession"

T = TypeVar("T")


def _load_record(store: KeyValueStore, key: str, loader: Callable[[Any], T]) -> Optional[T]:
    raw = read_json(store, key)
    if raw is None:
        return None
    try:
        return loader(raw)
    except (KeyError, TypeError, ValueError):
        logger.warning("Discarding malformed %s record.", key)
        return None


def _load_sessions(store: KeyValueStore) -> list[FocusSession]:
    raw = read_json(store, FOCUS_SESSIONS_KEY)
    if raw is None:
        return []
    try:
        if not isinstance(raw, list):
            raise TypeError("focus history must be a list")
        return [FocusSession.from_record(item) for item in raw]
    except (KeyError, TypeError, ValueError):
        logger.warning("Discarding malformed %s history.", FOCUS_SESSIONS_KEY)
        return []


def _load_distracting_apps(store: KeyValueStore) -> list[str]:
    raw = read_json(store, DISTRACTING_APPS_KEY)
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        if raw is not None:
            logger.warning("Discarding malformed %s list.", DISTRACTING_APPS_KEY)
        return []
    return unique_names(raw)


def _validate_duration(duration: float) -> float:
    try:
        value = float(duration)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"duration must be a number of seconds, got {duration!r}") from exc
    if not value > 0:
        raise ValueError(f"duration must be positive, got {duration!r}")
    return value


class FocusModeManager:
    """Lifecycle of time-boxed focus sessions that block a set of app names."""

    def __init__(
        self,
        store: KeyValueStore,
        notifier: NotificationScheduler,
        ticker: Ticker,
        events: EventBus,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[CoreSettings] = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._ticker = ticker
        self._events = events
        self._clock = clock or SystemClock()
        self._settings = settings or CoreSettings()
        self._lock = threading.RLock()
        self._tick_count = 0

        self._distracting_apps = _load_distracting_apps(store)
        self._sessions = _load_sessions(store)
        self._active = _load_record(store, ACTIVE_SESSION_KEY, FocusSession.from_record)
        self._scheduled = _load_record(store, SCHEDULED_SESSION_KEY, FocusSession.from_record)

        self.reconcile()

    # ---------- Distracting apps ----------

    @property
    def distracting_apps(self) -> list[str]:
        with self._lock:
            return list(self._distracting_apps)

    def add_distracting_app(self, app_name: str) -> None:
        with self._lock:
            if app_name in self._distracting_apps:
                return
            self._distracting_apps.append(app_name)
            self._save_distracting_apps()

    def remove_distracting_app(self, app_name: str) -> None:
        with self._lock:
            if app_name not in self._distracting_apps:
                return
            self._distracting_apps.remove(app_name)
            self._save_distracting_apps()

    def set_distracting_apps(self, apps: Iterable[str]) -> None:
        with self._lock:
            self._distracting_apps = unique_names(apps)
            self._save_distracting_apps()

    # ---------- Session lifecycle ----------

    def start_now(
        self, duration: float, blocked_apps: Optional[Iterable[str]] = None
    ) -> FocusSession:
        """Start a session immediately, force-ending any session already running."""
        seconds = _validate_duration(duration)
        with self._lock:
            if self._active is not None:
                self.end(completed=False)

            apps = self._distracting_apps if blocked_apps is None else blocked_apps
            session = FocusSession(
                start_time=self._clock.now(),
                duration=seconds,
                blocked_apps=unique_names(apps),
            )
            self._active = session
            self._sessions.append(session)
            self._save()
            self._arm_ticker()
            self._schedule_session_notifications(seconds)
            logger.info(
                "Focus session %s started for %.0fs blocking %d apps.",
                session.id,
                seconds,
                len(session.blocked_apps),
            )
            self._emit_state()
            return session

    def schedule(
        self,
        start_time: datetime,
        duration: float,
        blocked_apps: Optional[Iterable[str]] = None,
    ) -> FocusSession:
        """Schedule a session for ``start_time``, replacing any previous schedule."""
        seconds = _validate_duration(duration)
        with self._lock:
            apps = self._distracting_apps if blocked_apps is None else blocked_apps
            session = FocusSession(
                start_time=start_time,
                duration=seconds,
                blocked_apps=unique_names(apps),
            )
            self._schedule_reminder_notifications(start_time)
            self._scheduled = session
            self._save()
            logger.info("Focus session %s scheduled for %s.", session.id, start_time)
            self._emit_state()
            return session

    def end(self, completed: bool = True) -> None:
        """End the active session; does nothing when no session is active."""
        with self._lock:
            session = self._active
            if session is None:
                logger.debug("No active focus session to end.")
                return

            session.is_completed = completed
            session.actual_end_time = self._clock.now()
            self._replace_in_history(session)
            self._active = None
            self._ticker.disarm()
            self._notifier.cancel(SESSION_NOTIFICATION_IDS)
            self._save()
            logger.info(
                "Focus session %s ended (%s).",
                session.id,
                "completed" if completed else "interrupted",
            )
            self._emit_state(ended_session=session)

    def cancel_scheduled(self) -> None:
        with self._lock:
            if self._scheduled is not None:
                logger.info("Scheduled focus session %s cancelled.", self._scheduled.id)
                self._notifier.cancel((FOCUS_REMINDER, SCHEDULED_FOCUS_START))
            self._scheduled = None
            self._save()
            self._emit_state()

    # ---------- Queries ----------

    def is_blocked(self, app_name: str) -> bool:
        with self._lock:
            session = self._active
            if session is None or not session.is_active(self._clock.now()):
                return False
            return app_name in session.blocked_apps

    def current_state(self) -> FocusModeState:
        with self._lock:
            if self._active is not None and self._active.is_active(self._clock.now()):
                return FocusModeState.ACTIVE
            if self._scheduled is not None:
                return FocusModeState.SCHEDULED
            return FocusModeState.INACTIVE

    def active_session(self) -> Optional[FocusSession]:
        with self._lock:
            session = self._active
            if session is not None and session.is_active(self._clock.now()):
                return session
            return None

    @property
    def scheduled_session(self) -> Optional[FocusSession]:
        with self._lock:
            return self._scheduled

    def history(self) -> list[FocusSession]:
        with self._lock:
            return list(self._sessions)

    def history_lookup(self, session_id: str) -> Optional[FocusSession]:
        with self._lock:
            for session in self._sessions:
                if session.id == session_id:
                    return session
            return None

    def recent_history(self, days: int = 7) -> list[FocusSession]:
        """Completed sessions that started within the last ``days`` days."""
        with self._lock:
            cutoff = self._clock.now() - timedelta(days=days)
            return [
                session
                for session in self._sessions
                if session.is_completed and session.start_time >= cutoff
            ]

    # ---------- Reconciliation ----------

    def reconcile(self) -> None:
        with self._lock:
            now = self._clock.now()
            active = self._active
            if active is not None:
                if not active.is_active(now):
                    self.end(completed=True)
                elif not self._ticker.armed:
                    self._arm_ticker()

            scheduled = self._scheduled
            if scheduled is None:
                return
            if scheduled.start_time <= now < scheduled.end_time:
                self._promote(scheduled)
            elif now >= scheduled.end_time:
                logger.info(
                    "Scheduled focus session %s expired without starting; discarding.",
                    scheduled.id,
                )
                self._scheduled = None
                self._save()

    def tick(self) -> None:
        """Ticker callback: reconcile, then publish the countdown."""
        with self._lock:
            self.reconcile()
            session = self._active
            if session is None:
                return
            self._tick_count += 1
            if self._tick_count % self._settings.timer_event_every:
                return
            now = self._clock.now()
            event = FocusTimerUpdated(
                session_id=session.id,
                remaining_seconds=session.remaining_time(now),
                percent_complete=session.percent_complete(now),
            )
        self._events.emit(event)

    # ---------- Internals ----------

    def _promote(self, scheduled: FocusSession) -> None:
        if self._active is not None:
            self.end(completed=False)
        self._active = scheduled
        self._scheduled = None
        self._sessions.append(scheduled)
        self._save()
        self._arm_ticker()
        logger.info("Scheduled focus session %s is now active.", scheduled.id)
        self._emit_state()

    def _replace_in_history(self, session: FocusSession) -> None:
        for index, existing in enumerate(self._sessions):
            if existing.id == session.id:
                self._sessions[index] = session
                return

    def _arm_ticker(self) -> None:
        self._tick_count = 0
        self._ticker.arm(self.tick)

    def _emit_state(self, ended_session: Optional[FocusSession] = None) -> None:
        self._events.emit(
            FocusStateChanged(state=self.current_state(), ended_session=ended_session)
        )

    def _schedule_session_notifications(self, duration: float) -> None:
        settings = self._settings
        self._notifier.cancel(SESSION_NOTIFICATION_IDS)
        self._notifier.schedule(
            NotificationRequest(
                identifier=FOCUS_START,
                title="Focus Session Started",
                body="Your focus session has started. Stay focused!",
                delay=settings.start_notification_delay,
            )
        )
        self._notifier.schedule(
            NotificationRequest(
                identifier=FOCUS_HALFWAY,
                title="Focus Session Halfway",
                body="You're halfway through your focus session. Keep going!",
                delay=timedelta(seconds=duration / 2),
            )
        )
        if duration > settings.almost_done_min_duration.total_seconds():
            self._notifier.schedule(
                NotificationRequest(
                    identifier=FOCUS_ALMOST_DONE,
                    title="Focus Session Almost Complete",
                    body="Just one more minute in your focus session!",
                    delay=timedelta(seconds=duration) - settings.almost_done_lead,
                )
            )
        self._notifier.schedule(
            NotificationRequest(
                identifier=FOCUS_COMPLETE,
                title="Focus Session Complete",
                body="Great job! You've completed your focus session.",
                delay=timedelta(seconds=duration),
            )
        )

    def _schedule_reminder_notifications(self, start_time: datetime) -> None:
        # Requests for a replaced schedule must not outlive it.
        self._notifier.cancel((FOCUS_REMINDER, SCHEDULED_FOCUS_START))
        reminder_at = start_time - self._settings.reminder_lead
        if reminder_at > self._clock.now():
            self._notifier.schedule(
                NotificationRequest(
                    identifier=FOCUS_REMINDER,
                    title="Focus Session Reminder",
                    body="Your scheduled focus session is about to start.",
                    fire_at=reminder_at,
                )
            )
        self._notifier.schedule(
            NotificationRequest(
                identifier=SCHEDULED_FOCUS_START,
                title="Focus Session Started",
                body="Your scheduled focus session has started. Stay focused!",
                fire_at=start_time,
            )
        )

    def _save_distracting_apps(self) -> None:
        write_json(self._store, DISTRACTING_APPS_KEY, self._distracting_apps)

    def _save(self) -> None:
        write_json(
            self._store,
            FOCUS_SESSIONS_KEY,
            [session.to_record() for session in self._sessions],
        )
        write_json(
            self._store,
            ACTIVE_SESSION_KEY,
            self._active.to_record() if self._active else None,
        )
        write_json(
            self._store,
            SCHEDULED_SESSION_KEY,
            self._scheduled.to_record() if self._scheduled else None,
        )
