"""Notification requests, the in-memory scheduler and the event bus."""
from datetime import timedelta

from screen_balance.events import EventBus, UsageChanged
from screen_balance.notifications import InMemoryNotificationScheduler, NotificationRequest


def test_requests_replace_by_identifier(clock):
    scheduler = InMemoryNotificationScheduler(now=clock.now)
    scheduler.schedule(NotificationRequest("focusStart", "a", "b", delay=timedelta(seconds=2)))
    scheduler.schedule(NotificationRequest("focusStart", "c", "d", delay=timedelta(seconds=9)))

    pending = scheduler.pending()

    assert len(pending) == 1
    assert pending[0][0] == clock.now() + timedelta(seconds=9)
    assert pending[0][1].title == "c"


def test_pop_due_returns_requests_in_fire_order(clock):
    scheduler = InMemoryNotificationScheduler(now=clock.now)
    scheduler.schedule(NotificationRequest("focusComplete", "done", "", delay=timedelta(minutes=10)))
    scheduler.schedule(NotificationRequest("focusHalfway", "half", "", delay=timedelta(minutes=5)))
    scheduler.schedule(NotificationRequest("focusReminder", "soon", "", fire_at=clock.now() + timedelta(hours=1)))

    clock.advance(minutes=11)
    fired = scheduler.pop_due()

    assert [request.identifier for request in fired] == ["focusHalfway", "focusComplete"]
    assert [request.identifier for _, request in scheduler.pending()] == ["focusReminder"]


def test_cancel_unknown_identifier_is_ignored(clock):
    scheduler = InMemoryNotificationScheduler(now=clock.now)

    scheduler.cancel(["focusStart"])

    assert scheduler.pending() == []


def test_failing_handler_does_not_stop_delivery():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(UsageChanged, broken)
    bus.subscribe(UsageChanged, received.append)

    bus.emit(UsageChanged(kind="open", app_name="Safari"))

    assert received == [UsageChanged(kind="open", app_name="Safari")]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    bus.subscribe(UsageChanged, received.append)
    bus.unsubscribe(UsageChanged, received.append)

    bus.emit(UsageChanged(kind="close"))

    assert received == []
