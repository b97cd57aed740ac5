"""Repeating wake-up that drives focus session reconciliation."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Ticker(Protocol):
    @property
    def armed(self) -> bool: ...

    def arm(self, callback: Callable[[], None]) -> None: ...

    def disarm(self) -> None: ...


class ThreadTicker:
    """Calls ``callback`` every ``interval`` on a daemon thread until disarmed."""

    def __init__(self, interval: timedelta = timedelta(seconds=1)) -> None:
        self._interval = interval.total_seconds()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def armed(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive() and self._stop_event)

    def arm(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive() and self._stop_event:
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(callback, stop_event),
                name="screen-balance-ticker",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
        logger.debug("Ticker armed.")

    def disarm(self) -> None:
        # No join: the owner may hold its own lock while a tick waits on it.
        with self._lock:
            if not self._stop_event:
                return
            self._stop_event.set()
            self._thread = None
            self._stop_event = None
        logger.debug("Ticker disarmed.")

    def _run(self, callback: Callable[[], None], stop_event: threading.Event) -> None:
        # Sleep in an interruptible manner.
        while not stop_event.wait(self._interval):
            try:
                callback()
            except Exception:
                logger.exception("Ticker callback failed.")
