"""Typed state-change events and the channel that delivers them."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .models import FocusModeState, FocusSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FocusStateChanged:
    state: FocusModeState
    ended_session: Optional[FocusSession] = None


@dataclass(frozen=True, slots=True)
class FocusTimerUpdated:
    session_id: str
    remaining_seconds: float
    percent_complete: float


@dataclass(frozen=True, slots=True)
class UsageChanged:
    kind: str
    app_name: Optional[str] = None


E = TypeVar("E")
Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class."""

    def __init__(self) -> None:
        self._handlers: defaultdict[type, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # A broken observer must not undo an already persisted change.
                logger.exception("Event handler failed for %s", type(event).__name__)
