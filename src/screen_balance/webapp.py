"""FastAPI application that exposes the focus manager and usage tracker locally."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import CoreSettings
from .models import DailyUsage, FocusSession
from .notifications import InMemoryNotificationScheduler
from .paths import get_store_path
from .services import CoreServices, open_services

logger = logging.getLogger(__name__)


class DashboardRunner:
    """Background loop of the dashboard process.

    Each pass reconciles the focus manager, so a scheduled session is
    promoted or discarded even while no ticker is armed, and then delivers
    due notification requests when the scheduler keeps them in memory.
    """

    def __init__(
        self,
        services: CoreServices,
        interval: timedelta = timedelta(seconds=1),
        keep: int = 50,
    ) -> None:
        self._services = services
        self._interval = interval.total_seconds()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._delivered: deque[Dict[str, Any]] = deque(maxlen=keep)

    @property
    def scheduler(self) -> Optional[InMemoryNotificationScheduler]:
        notifier = self._services.notifier
        if isinstance(notifier, InMemoryNotificationScheduler):
            return notifier
        return None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run, args=(stop_event,), name="screen-balance-dashboard", daemon=True
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Dashboard background loop started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Dashboard background loop stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def delivered(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._delivered)

    def run_once(self) -> None:
        self._services.focus.reconcile()
        self.deliver_due()

    def deliver_due(self) -> None:
        scheduler = self.scheduler
        if scheduler is None:
            return
        fired = scheduler.pop_due()
        if not fired:
            return
        now = self._services.clock.now().isoformat()
        with self._lock:
            for request in fired:
                self._delivered.append(
                    {
                        "identifier": request.identifier,
                        "title": request.title,
                        "body": request.body,
                        "delivered_at": now,
                    }
                )

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("Dashboard background pass failed.")


class StartFocusPayload(BaseModel):
    duration_seconds: float = Field(gt=0)
    blocked_apps: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class ScheduleFocusPayload(BaseModel):
    start_time: datetime
    duration_seconds: float = Field(gt=0)
    blocked_apps: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class EndFocusPayload(BaseModel):
    completed: bool = True

    model_config = ConfigDict(extra="forbid")


class AppListPayload(BaseModel):
    apps: List[str]

    model_config = ConfigDict(extra="forbid")


class AppPayload(BaseModel):
    app_name: str

    model_config = ConfigDict(extra="forbid")


class GoalUpdate(BaseModel):
    daily_usage_limit: Optional[float] = Field(default=None, ge=0)
    weekly_reduction_target: Optional[float] = None
    focus_apps: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[CoreSettings] = None,
    services: Optional[CoreServices] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved = services or open_services(Path(db_path or get_store_path()), settings)
    runner = DashboardRunner(resolved, interval=resolved.settings.tick_interval)

    app = FastAPI(title="Screen Balance", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = resolved
    app.state.runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        resolved.focus.reconcile()
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()
        resolved.ticker.disarm()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "focus_state": resolved.focus.current_state().value,
            "ticker_armed": resolved.ticker.armed,
            "background_running": request.app.state.runner.is_running(),
            "first_weekday": resolved.settings.first_weekday,
        }

    # ---------- focus ----------

    @app.get("/api/focus")
    def focus_state() -> Dict[str, Any]:
        focus = resolved.focus
        now = resolved.clock.now()
        active = focus.active_session()
        scheduled = focus.scheduled_session
        return {
            "state": focus.current_state().value,
            "active": _session_payload(active, now) if active else None,
            "scheduled": _session_payload(scheduled, now) if scheduled else None,
        }

    @app.post("/api/focus/start")
    def start_focus(payload: StartFocusPayload) -> Dict[str, Any]:
        session = resolved.focus.start_now(payload.duration_seconds, payload.blocked_apps)
        return _session_payload(session, resolved.clock.now())

    @app.post("/api/focus/schedule")
    def schedule_focus(payload: ScheduleFocusPayload) -> Dict[str, Any]:
        start_time = payload.start_time
        if start_time.tzinfo is not None:
            start_time = start_time.astimezone().replace(tzinfo=None)
        session = resolved.focus.schedule(
            start_time, payload.duration_seconds, payload.blocked_apps
        )
        return _session_payload(session, resolved.clock.now())

    @app.post("/api/focus/end")
    def end_focus(payload: Optional[EndFocusPayload] = None) -> Dict[str, Any]:
        completed = payload.completed if payload else True
        resolved.focus.end(completed=completed)
        return {"state": resolved.focus.current_state().value}

    @app.delete("/api/focus/scheduled")
    def cancel_scheduled() -> Dict[str, Any]:
        resolved.focus.cancel_scheduled()
        return {"state": resolved.focus.current_state().value}

    @app.get("/api/focus/blocked/{app_name}")
    def is_blocked(app_name: str) -> Dict[str, Any]:
        return {"app_name": app_name, "blocked": resolved.focus.is_blocked(app_name)}

    @app.get("/api/focus/history")
    def focus_history(
        days: Optional[int] = Query(default=None, ge=1, description="Completed sessions from the last N days."),
    ) -> Dict[str, Any]:
        sessions = (
            resolved.focus.recent_history(days) if days else resolved.focus.history()
        )
        now = resolved.clock.now()
        return {"sessions": [_session_payload(session, now) for session in sessions]}

    @app.get("/api/focus/history/{session_id}")
    def focus_history_entry(session_id: str) -> Dict[str, Any]:
        session = resolved.focus.history_lookup(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return _session_payload(session, resolved.clock.now())

    @app.get("/api/apps")
    def list_apps() -> Dict[str, Any]:
        return {"apps": resolved.focus.distracting_apps}

    @app.put("/api/apps")
    def replace_apps(payload: AppListPayload) -> Dict[str, Any]:
        resolved.focus.set_distracting_apps(name.strip() for name in payload.apps if name.strip())
        return {"apps": resolved.focus.distracting_apps}

    # ---------- usage ----------

    @app.post("/api/usage/open")
    def usage_open(payload: AppPayload) -> JSONResponse:
        recorded = resolved.usage.record_app_open(payload.app_name)
        return JSONResponse(
            status_code=200 if recorded else 409,
            content={
                "recorded": recorded,
                "blocked": resolved.focus.is_blocked(payload.app_name),
            },
        )

    @app.post("/api/usage/close")
    def usage_close(payload: AppPayload) -> JSONResponse:
        recorded = resolved.usage.record_app_close(payload.app_name)
        return JSONResponse(status_code=200 if recorded else 409, content={"recorded": recorded})

    @app.get("/api/usage/today")
    def usage_today() -> Dict[str, Any]:
        usage = resolved.usage
        row = usage.today_usage()
        pending = usage.pending_session()
        return {
            "usage": _daily_payload(row) if row else None,
            "pending": (
                {
                    "app_name": pending.app_name,
                    "start_time": pending.start_time.isoformat(),
                }
                if pending
                else None
            ),
            "exceeded_daily_limit": usage.has_exceeded_daily_limit(),
        }

    @app.get("/api/usage/goal")
    def usage_goal() -> Dict[str, Any]:
        return _goal_payload(resolved)

    @app.put("/api/usage/goal")
    def update_goal(payload: GoalUpdate) -> Dict[str, Any]:
        resolved.usage.update_usage_goal(
            daily_limit=payload.daily_usage_limit,
            weekly_reduction=payload.weekly_reduction_target,
            focus_apps=payload.focus_apps,
        )
        return _goal_payload(resolved)

    @app.get("/api/usage/history")
    def usage_history(
        date_value: Optional[str] = Query(default=None, alias="date", description="Single day, YYYY-MM-DD."),
        start: Optional[str] = Query(default=None, description="Start date (inclusive)."),
        end: Optional[str] = Query(default=None, description="End date (inclusive)."),
        days: Optional[int] = Query(default=None, ge=0, description="Trailing number of days."),
    ) -> Dict[str, Any]:
        usage = resolved.usage
        if date_value:
            row = usage.usage_for_date(_parse_date(date_value))
            rows = [row] if row else []
        elif start:
            start_day = _parse_date(start)
            end_day = _parse_date(end) if end else start_day
            if end_day < start_day:
                raise HTTPException(
                    status_code=400, detail="end date must be on or after start date"
                )
            rows = usage.usage_for_range(start_day, end_day)
        elif days is not None:
            rows = usage.usage_history(days)
        else:
            rows = usage.usage_for_range(date.min, date.max)
        return {
            "days": [_daily_payload(row) for row in rows],
            "dates_with_usage": [day.isoformat() for day in usage.dates_with_usage()],
        }

    @app.get("/api/usage/trends")
    def usage_trends(days: int = Query(default=7, ge=1)) -> Dict[str, Any]:
        return {
            "trends": [
                {"date": day.isoformat(), "seconds": seconds}
                for day, seconds in resolved.usage.usage_trends(days)
            ]
        }

    @app.post("/api/usage/weekly-summary")
    def generate_weekly_summary() -> Dict[str, Any]:
        summary = resolved.usage.generate_weekly_summary()
        return {"summary": summary.to_record() if summary else None}

    @app.get("/api/usage/weekly")
    def weekly_summaries() -> Dict[str, Any]:
        return {
            "summaries": [item.to_record() for item in resolved.usage.weekly_summaries()]
        }

    # ---------- collaborators ----------

    @app.get("/api/reinforcement")
    def reinforcement_events() -> Dict[str, Any]:
        return {
            "events": [
                {
                    "kind": event.kind,
                    "value": event.value,
                    "threshold": event.threshold,
                    "occurred_at": event.occurred_at.isoformat(),
                }
                for event in resolved.recent_events.recent()
            ]
        }

    @app.get("/api/notifications")
    def notifications(request: Request) -> Dict[str, Any]:
        background = request.app.state.runner
        scheduler = background.scheduler
        if scheduler is None:
            return {"pending": [], "delivered": []}
        background.deliver_due()
        return {
            "pending": [
                {
                    "identifier": item.identifier,
                    "title": item.title,
                    "fire_at": fire_at.isoformat(),
                }
                for fire_at, item in scheduler.pending()
            ],
            "delivered": background.delivered(),
        }

    @app.exception_handler(ValueError)
    async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _session_payload(session: FocusSession, now: datetime) -> Dict[str, Any]:
    return {
        "id": session.id,
        "start_time": session.start_time.isoformat(),
        "end_time": session.end_time.isoformat(),
        "duration_seconds": session.duration,
        "blocked_apps": list(session.blocked_apps),
        "is_completed": session.is_completed,
        "actual_end_time": (
            session.actual_end_time.isoformat() if session.actual_end_time else None
        ),
        "is_active": session.is_active(now),
        "remaining_seconds": session.remaining_time(now),
        "percent_complete": session.percent_complete(now),
    }


def _daily_payload(row: DailyUsage) -> Dict[str, Any]:
    return {
        "date": row.date.isoformat(),
        "total_usage_time": row.total_usage_time,
        "apps": [
            {
                "app_name": stats.app_name,
                "launch_count": stats.launch_count,
                "total_usage_time": stats.total_usage_time,
            }
            for stats in sorted(
                row.app_stats.values(), key=lambda item: item.total_usage_time, reverse=True
            )
        ],
    }


def _goal_payload(services: CoreServices) -> Dict[str, Any]:
    usage = services.usage
    goal = usage.usage_goal
    daily = usage.goal_progress()
    weekly = usage.weekly_reduction_progress()
    return {
        "goal": goal.to_record(),
        "daily": {
            "current_usage": daily.current_usage,
            "limit": daily.limit,
            "percent_of_limit": daily.percent_of_limit,
        },
        "weekly": {
            "current_reduction": weekly.current_reduction,
            "target": weekly.target,
            "percent_of_target": weekly.percent_of_target,
        },
        "exceeded_daily_limit": usage.has_exceeded_daily_limit(),
    }
