"""Command-line interface for the focus manager and usage tracker."""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import typer

from .config import CoreSettings
from .paths import get_store_path
from .reporting import SummaryPrinter, format_duration
from .server_runner import run_dashboard
from .services import CoreServices, open_services

app = typer.Typer(help="Focus sessions and app usage goals.")
focus_app = typer.Typer(help="Start, schedule and end focus sessions.")
apps_app = typer.Typer(help="Manage the default list of distracting apps.")
usage_app = typer.Typer(help="Record app usage and check goals.")
app.add_typer(focus_app, name="focus")
app.add_typer(apps_app, name="apps")
app.add_typer(usage_app, name="usage")


@app.callback(no_args_is_help=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the state SQLite database.",
    ),
    first_weekday: Optional[int] = typer.Option(
        None,
        "--first-weekday",
        min=0,
        max=6,
        help="First day of the week, 0=Monday through 6=Sunday. Defaults to Monday.",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ctx.obj = {
        "db_path": db_path,
        "settings": CoreSettings.from_values(first_weekday=first_weekday),
    }


def _services(ctx: typer.Context) -> CoreServices:
    obj = ctx.find_root().obj or {}
    services = open_services(
        obj.get("db_path") or get_store_path(),
        settings=obj.get("settings"),
    )
    ctx.call_on_close(services.shutdown)
    return services


def _parse_day(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter("expected YYYY-MM-DD") from exc


# ---------- focus ----------


@focus_app.command("start")
def focus_start(
    ctx: typer.Context,
    minutes: float = typer.Option(25.0, "--minutes", "-m", help="Session length in minutes."),
    apps: Optional[List[str]] = typer.Option(
        None, "--app", "-a", help="App to block (repeatable). Defaults to the distracting apps."
    ),
) -> None:
    """Start a focus session now."""
    services = _services(ctx)
    try:
        session = services.focus.start_now(minutes * 60, apps or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(
        f"Focus session {session.id} running until {session.end_time:%H:%M:%S} "
        f"blocking: {', '.join(session.blocked_apps) or '(nothing)'}"
    )


@focus_app.command("schedule")
def focus_schedule(
    ctx: typer.Context,
    at: str = typer.Option(..., "--at", help='Start time as "YYYY-MM-DD HH:MM".'),
    minutes: float = typer.Option(25.0, "--minutes", "-m", help="Session length in minutes."),
    apps: Optional[List[str]] = typer.Option(None, "--app", "-a", help="App to block (repeatable)."),
) -> None:
    """Schedule a focus session for later."""
    try:
        start_time = datetime.strptime(at, "%Y-%m-%d %H:%M")
    except ValueError as exc:
        raise typer.BadParameter('expected "YYYY-MM-DD HH:MM"') from exc
    services = _services(ctx)
    try:
        session = services.focus.schedule(start_time, minutes * 60, apps or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Focus session {session.id} scheduled for {session.start_time:%Y-%m-%d %H:%M}.")


@focus_app.command("end")
def focus_end(
    ctx: typer.Context,
    abandon: bool = typer.Option(False, "--abandon", help="Mark the session as not completed."),
) -> None:
    """End the active focus session."""
    services = _services(ctx)
    if services.focus.active_session() is None:
        typer.echo("No active focus session.")
        return
    services.focus.end(completed=not abandon)
    typer.echo("Focus session ended.")


@focus_app.command("cancel")
def focus_cancel(ctx: typer.Context) -> None:
    """Cancel the scheduled focus session."""
    _services(ctx).focus.cancel_scheduled()
    typer.echo("Scheduled focus session cleared.")


@focus_app.command("status")
def focus_status(ctx: typer.Context) -> None:
    """Show the current focus state."""
    services = _services(ctx)
    focus = services.focus
    typer.echo(f"State: {focus.current_state().value}")
    session = focus.active_session()
    if session is not None:
        now = services.clock.now()
        typer.echo(
            f"Remaining: {session.formatted_remaining_time(now)} "
            f"({session.percent_complete(now) * 100:.0f}% done)"
        )
        typer.echo(f"Blocking: {', '.join(session.blocked_apps) or '(nothing)'}")
    scheduled = focus.scheduled_session
    if scheduled is not None:
        typer.echo(
            f"Scheduled: {scheduled.start_time:%Y-%m-%d %H:%M} "
            f"for {format_duration(scheduled.duration)}"
        )


@focus_app.command("blocked")
def focus_blocked(ctx: typer.Context, app_name: str = typer.Argument(...)) -> None:
    """Exit with status 1 when APP_NAME is blocked right now."""
    blocked = _services(ctx).focus.is_blocked(app_name)
    typer.echo("blocked" if blocked else "allowed")
    if blocked:
        raise typer.Exit(code=1)


@focus_app.command("history")
def focus_history(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", min=1, help="How many days back to list."),
) -> None:
    """List completed focus sessions."""
    sessions = _services(ctx).focus.recent_history(days)
    if not sessions:
        typer.echo("No completed focus sessions.")
        return
    for session in sessions:
        typer.echo(
            f"{session.start_time:%Y-%m-%d %H:%M}  {format_duration(session.duration)}  "
            f"{', '.join(session.blocked_apps)}"
        )


@focus_app.command("stats")
def focus_stats(ctx: typer.Context) -> None:
    """Show today's focus statistics and the last week."""
    services = _services(ctx)
    SummaryPrinter(services.usage, services.focus).print_focus_stats(services.clock.today())


# ---------- apps ----------


@apps_app.command("list")
def apps_list(ctx: typer.Context) -> None:
    for name in _services(ctx).focus.distracting_apps:
        typer.echo(name)


@apps_app.command("add")
def apps_add(ctx: typer.Context, app_name: str = typer.Argument(...)) -> None:
    _services(ctx).focus.add_distracting_app(app_name)
    typer.echo(f"Added {app_name}.")


@apps_app.command("remove")
def apps_remove(ctx: typer.Context, app_name: str = typer.Argument(...)) -> None:
    _services(ctx).focus.remove_distracting_app(app_name)
    typer.echo(f"Removed {app_name}.")


# ---------- usage ----------


@usage_app.command("open")
def usage_open(ctx: typer.Context, app_name: str = typer.Argument(...)) -> None:
    """Record that APP_NAME is being opened now."""
    services = _services(ctx)
    if services.focus.is_blocked(app_name):
        typer.echo(f"Warning: {app_name} is blocked by the active focus session.")
    if not services.usage.record_app_open(app_name):
        pending = services.usage.pending_session()
        typer.echo(f"{pending.app_name if pending else 'Another app'} is still open; close it first.")
        raise typer.Exit(code=1)
    typer.echo(f"Tracking {app_name}.")


@usage_app.command("close")
def usage_close(ctx: typer.Context, app_name: str = typer.Argument(...)) -> None:
    """Record that APP_NAME was closed."""
    services = _services(ctx)
    if not services.usage.record_app_close(app_name):
        typer.echo(f"{app_name} is not being tracked.")
        raise typer.Exit(code=1)
    progress = services.usage.goal_progress()
    typer.echo(
        f"Today: {format_duration(progress.current_usage)} of "
        f"{format_duration(progress.limit)} ({progress.percent_of_limit:.0f}%)"
    )


@usage_app.command("goal")
def usage_goal(ctx: typer.Context) -> None:
    """Show progress against the daily limit and weekly reduction target."""
    usage = _services(ctx).usage
    daily = usage.goal_progress()
    weekly = usage.weekly_reduction_progress()
    typer.echo(
        f"Daily: {format_duration(daily.current_usage)} / {format_duration(daily.limit)} "
        f"({daily.percent_of_limit:.1f}%)"
    )
    typer.echo(
        f"Weekly reduction: {weekly.current_reduction:.1f}% of {weekly.target:.1f}% target "
        f"({weekly.percent_of_target:.0f}%)"
    )
    if usage.has_exceeded_daily_limit():
        typer.echo("Daily limit exceeded.")


@usage_app.command("set-goal")
def usage_set_goal(
    ctx: typer.Context,
    limit_minutes: Optional[float] = typer.Option(None, "--limit-minutes", min=0.0),
    reduction: Optional[float] = typer.Option(
        None, "--reduction", help="Weekly reduction target as a fraction (0.05 = 5%)."
    ),
    focus_apps: Optional[List[str]] = typer.Option(None, "--focus-app"),
) -> None:
    """Update the usage goal."""
    goal = _services(ctx).usage.update_usage_goal(
        daily_limit=limit_minutes * 60 if limit_minutes is not None else None,
        weekly_reduction=reduction,
        focus_apps=focus_apps or None,
    )
    typer.echo(
        f"Daily limit {format_duration(goal.daily_usage_limit)}, "
        f"weekly reduction {goal.weekly_reduction_target * 100:.1f}%"
    )


@usage_app.command("week")
def usage_week(ctx: typer.Context) -> None:
    """Compute and store this week's summary."""
    summary = _services(ctx).usage.generate_weekly_summary()
    if summary is None:
        typer.echo("No usage recorded this week.")
        return
    typer.echo(f"Week of {summary.week_start_date:%Y-%m-%d}")
    typer.echo(f"Total:         {format_duration(summary.total_usage_time)}")
    typer.echo(f"Daily average: {format_duration(summary.daily_average_time)}")
    typer.echo(f"Most used:     {summary.most_used_app}")
    typer.echo(f"Reduction:     {summary.usage_reduction_percentage:.1f}%")


@usage_app.command("trends")
def usage_trends(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", min=1),
) -> None:
    for day, seconds in _services(ctx).usage.usage_trends(days):
        typer.echo(f"{day:%a %Y-%m-%d}  {format_duration(seconds)}")


# ---------- top level ----------


@app.command()
def summary(
    ctx: typer.Context,
    date_value: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
) -> None:
    """Print a high-level usage summary for a specific day."""
    target = _parse_day(date_value)
    services = _services(ctx)
    SummaryPrinter(services.usage, services.focus).print_daily_summary(target)


@app.command()
def running(ctx: typer.Context) -> None:
    """List running processes that the active focus session blocks."""
    from .probe import find_blocked_processes

    services = _services(ctx)
    session = services.focus.active_session()
    if session is None:
        typer.echo("No active focus session.")
        return
    matches = find_blocked_processes(services.focus.is_blocked, session.blocked_apps)
    if not matches:
        typer.echo("No blocked apps are running.")
        return
    for proc in matches:
        typer.echo(f"{proc.pid:>7}  {proc.name}")


@app.command()
def web(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-open-browser",
        help="Automatically launch the dashboard in your default browser.",
    ),
) -> None:
    """Start the local dashboard and API."""
    obj = ctx.find_root().obj or {}
    run_dashboard(
        host=host,
        port=port,
        db_path=obj.get("db_path") or get_store_path(),
        settings=obj.get("settings"),
        open_browser=open_browser,
    )
