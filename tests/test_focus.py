"""Focus session lifecycle, scheduling, reconciliation and persistence."""
from datetime import timedelta

import pytest

from screen_balance.events import FocusStateChanged, FocusTimerUpdated
from screen_balance.focus import (
    ACTIVE_SESSION_KEY,
    FOCUS_SESSIONS_KEY,
    SCHEDULED_SESSION_KEY,
    FocusModeManager,
)
from screen_balance.models import FocusModeState, FocusSession
from screen_balance.notifications import SESSION_NOTIFICATION_IDS


@pytest.fixture
def manager(store, scheduler, ticker, events, clock, settings):
    return FocusModeManager(store, scheduler, ticker, events, clock=clock, settings=settings)


def make_manager(store, scheduler, ticker, events, clock, settings):
    return FocusModeManager(store, scheduler, ticker, events, clock=clock, settings=settings)


def test_start_now_is_active_and_blocks_listed_apps(manager):
    session = manager.start_now(1500, ["Twitter", "Reddit"])

    assert manager.current_state() is FocusModeState.ACTIVE
    assert manager.is_blocked("Twitter")
    assert manager.is_blocked("Reddit")
    assert not manager.is_blocked("Mail")
    assert manager.history() == [session]
    assert manager.active_session() is session


def test_start_now_defaults_to_distracting_apps(manager):
    manager.set_distracting_apps(["Games", "Video", "Games"])
    assert manager.distracting_apps == ["Games", "Video"]

    session = manager.start_now(600)

    assert session.blocked_apps == ["Games", "Video"]


def test_start_now_with_empty_list_blocks_nothing(manager):
    manager.set_distracting_apps(["Games"])

    session = manager.start_now(600, [])

    assert session.blocked_apps == []
    assert not manager.is_blocked("Games")


@pytest.mark.parametrize("duration", [0, -5])
def test_start_now_rejects_non_positive_duration(manager, duration):
    with pytest.raises(ValueError):
        manager.start_now(duration)
    assert manager.current_state() is FocusModeState.INACTIVE


def test_second_start_force_ends_first(manager, clock):
    first = manager.start_now(1500, ["A"])
    clock.advance(minutes=5)
    second = manager.start_now(900, ["B"])

    history = manager.history()
    assert [s.id for s in history] == [first.id, second.id]
    assert history[0].is_completed is False
    assert history[0].actual_end_time == clock.now()
    assert manager.active_session() is second
    assert manager.is_blocked("B")
    assert not manager.is_blocked("A")


def test_start_now_requests_four_notifications(manager, scheduler):
    manager.start_now(1500)

    assert scheduler.requested_ids() == [
        "focusStart",
        "focusHalfway",
        "focusAlmostDone",
        "focusComplete",
    ]
    halfway = scheduler.requested[1]
    assert halfway.delay == timedelta(seconds=750)
    almost = scheduler.requested[2]
    assert almost.delay == timedelta(seconds=1440)


def test_short_session_skips_almost_done(manager, scheduler):
    manager.start_now(120)

    assert "focusAlmostDone" not in scheduler.requested_ids()
    assert len(scheduler.requested) == 3


def test_end_marks_completed_and_cancels_notifications(manager, scheduler, ticker, clock):
    session = manager.start_now(1500)
    assert ticker.armed
    clock.advance(minutes=10)

    manager.end()

    stored = manager.history_lookup(session.id)
    assert stored.is_completed is True
    assert stored.actual_end_time == clock.now()
    assert manager.current_state() is FocusModeState.INACTIVE
    assert not ticker.armed
    assert scheduler.cancelled[-1] == list(SESSION_NOTIFICATION_IDS)
    assert scheduler.pending() == []


def test_end_without_active_session_is_noop(manager, events):
    seen = []
    events.subscribe(FocusStateChanged, seen.append)

    manager.end()

    assert seen == []
    assert manager.history() == []


def test_schedule_far_ahead_requests_reminder_and_start(manager, scheduler, clock):
    start = clock.now() + timedelta(hours=1)

    session = manager.schedule(start, 1800, ["Games"])

    ids = scheduler.requested_ids()
    assert ids.count("focusReminder") == 1
    assert ids.count("scheduledFocusStart") == 1
    assert scheduler.requested[0].fire_at == start - timedelta(minutes=5)
    assert manager.current_state() is FocusModeState.SCHEDULED
    assert manager.scheduled_session is session
    assert manager.history() == []


def test_schedule_soon_skips_reminder(manager, scheduler, clock):
    manager.schedule(clock.now() + timedelta(minutes=3), 1800)

    assert scheduler.requested_ids() == ["scheduledFocusStart"]


def test_schedule_replaces_previous(manager, clock):
    manager.schedule(clock.now() + timedelta(hours=1), 600)
    later = manager.schedule(clock.now() + timedelta(hours=2), 600)

    assert manager.scheduled_session is later


def test_rescheduling_drops_reminder_of_replaced_session(manager, scheduler, clock):
    manager.schedule(clock.now() + timedelta(hours=1), 600)
    soon = clock.now() + timedelta(minutes=2)

    manager.schedule(soon, 600)

    assert [(fire_at, request.identifier) for fire_at, request in scheduler.pending()] == [
        (soon, "scheduledFocusStart"),
    ]


def test_cancel_scheduled(manager, scheduler, clock, events):
    seen = []
    events.subscribe(FocusStateChanged, seen.append)
    manager.schedule(clock.now() + timedelta(hours=1), 600)

    manager.cancel_scheduled()

    assert manager.current_state() is FocusModeState.INACTIVE
    assert scheduler.pending() == []
    assert [event.state for event in seen] == [
        FocusModeState.SCHEDULED,
        FocusModeState.INACTIVE,
    ]


def test_active_takes_priority_over_scheduled(manager, clock):
    manager.schedule(clock.now() + timedelta(hours=1), 600)
    manager.start_now(600)

    assert manager.current_state() is FocusModeState.ACTIVE


def test_tick_completes_expired_session(manager, ticker, clock, events):
    ended = []
    events.subscribe(FocusStateChanged, ended.append)
    session = manager.start_now(60)

    clock.advance(seconds=61)
    ticker.fire()

    assert manager.current_state() is FocusModeState.INACTIVE
    assert manager.history_lookup(session.id).is_completed is True
    assert ended[-1].ended_session.id == session.id
    assert not ticker.armed


def test_tick_emits_timer_updates(manager, ticker, clock, events):
    updates = []
    events.subscribe(FocusTimerUpdated, updates.append)
    manager.start_now(100)

    clock.advance(seconds=25)
    ticker.fire()

    assert len(updates) == 1
    assert updates[0].remaining_seconds == pytest.approx(75)
    assert updates[0].percent_complete == pytest.approx(0.25)


def test_session_boundary_is_half_open(manager, clock):
    manager.start_now(60, ["A"])

    clock.advance(seconds=59)
    assert manager.is_blocked("A")
    clock.advance(seconds=1)
    assert not manager.is_blocked("A")
    assert manager.current_state() is FocusModeState.INACTIVE


def test_scheduled_session_is_promoted_when_window_opens(manager, ticker, clock):
    manager.start_now(30)
    scheduled = manager.schedule(clock.now() + timedelta(minutes=10), 600, ["Chat"])
    clock.advance(seconds=31)
    ticker.fire()
    assert manager.current_state() is FocusModeState.SCHEDULED

    clock.advance(minutes=10)
    manager.reconcile()

    assert manager.current_state() is FocusModeState.ACTIVE
    assert manager.active_session().id == scheduled.id
    assert manager.scheduled_session is None
    assert manager.history()[-1].id == scheduled.id
    assert manager.is_blocked("Chat")
    assert ticker.armed


def test_reconcile_on_startup_promotes_scheduled(store, scheduler, ticker, events, clock, settings):
    manager = make_manager(store, scheduler, ticker, events, clock, settings)
    scheduled = manager.schedule(clock.now() + timedelta(minutes=1), 600)

    clock.advance(minutes=2)
    reloaded = make_manager(store, scheduler, ticker, events, clock, settings)

    assert reloaded.current_state() is FocusModeState.ACTIVE
    assert reloaded.active_session().id == scheduled.id


def test_elapsed_scheduled_session_is_discarded(store, scheduler, ticker, events, clock, settings):
    manager = make_manager(store, scheduler, ticker, events, clock, settings)
    manager.schedule(clock.now() + timedelta(minutes=1), 60)

    clock.advance(hours=1)
    reloaded = make_manager(store, scheduler, ticker, events, clock, settings)

    assert reloaded.current_state() is FocusModeState.INACTIVE
    assert reloaded.scheduled_session is None
    assert reloaded.history() == []
    assert store.get(SCHEDULED_SESSION_KEY) is None


def test_expired_active_session_completes_on_startup(store, scheduler, ticker, events, clock, settings):
    manager = make_manager(store, scheduler, ticker, events, clock, settings)
    session = manager.start_now(300)

    clock.advance(minutes=30)
    reloaded = make_manager(store, scheduler, ticker, events, clock, settings)

    assert reloaded.current_state() is FocusModeState.INACTIVE
    assert reloaded.history_lookup(session.id).is_completed is True
    assert store.get(ACTIVE_SESSION_KEY) is None


def test_reload_reproduces_state(store, scheduler, ticker, events, clock, settings):
    manager = make_manager(store, scheduler, ticker, events, clock, settings)
    manager.set_distracting_apps(["Games", "News"])
    done = manager.start_now(600, ["Games"])
    manager.end()
    active = manager.start_now(1200)
    scheduled = manager.schedule(clock.now() + timedelta(days=1), 900, ["News"])

    reloaded = make_manager(store, scheduler, ticker, events, clock, settings)

    assert reloaded.distracting_apps == ["Games", "News"]
    assert reloaded.history() == manager.history()
    assert reloaded.history_lookup(done.id).is_completed
    assert reloaded.active_session() == active
    assert reloaded.scheduled_session == scheduled


def test_corrupted_records_load_as_empty(store, scheduler, ticker, events, clock, settings):
    store.set(FOCUS_SESSIONS_KEY, "{not json")
    store.set(ACTIVE_SESSION_KEY, '{"id": "x", "duration": -1}')
    store.set(SCHEDULED_SESSION_KEY, "[1, 2, 3]")
    store.set("distractingApps", '{"a": 1}')

    manager = make_manager(store, scheduler, ticker, events, clock, settings)

    assert manager.history() == []
    assert manager.distracting_apps == []
    assert manager.current_state() is FocusModeState.INACTIVE


def test_recent_history_only_completed_and_recent(manager, clock):
    old = manager.start_now(600)
    manager.end()
    clock.advance(days=10)
    abandoned = manager.start_now(600)
    manager.end(completed=False)
    recent = manager.start_now(600)
    manager.end()

    ids = [s.id for s in manager.recent_history(days=7)]

    assert ids == [recent.id]
    assert old.id not in ids and abandoned.id not in ids


def test_distracting_app_add_remove(manager):
    manager.add_distracting_app("Games")
    manager.add_distracting_app("Games")
    manager.add_distracting_app("Video")
    manager.remove_distracting_app("Games")
    manager.remove_distracting_app("Missing")

    assert manager.distracting_apps == ["Video"]


def test_session_derived_values(clock):
    session = FocusSession(start_time=clock.now(), duration=200)

    assert session.end_time == clock.now() + timedelta(seconds=200)
    assert session.percent_complete(clock.now()) == 0.0
    later = clock.now() + timedelta(seconds=50)
    assert session.remaining_time(later) == pytest.approx(150)
    assert session.formatted_remaining_time(later) == "02:30"
    assert session.percent_complete(later) == pytest.approx(0.25)
    finished = clock.now() + timedelta(seconds=500)
    assert session.remaining_time(finished) == 0
    assert session.percent_complete(finished) == 1.0
