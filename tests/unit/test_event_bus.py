import logging
from pathlib import Path
from clipbatch.infrastructure.event_bus import EventBus
from clipbatch.domain.events import Event, EntryQueued, LogEmitted
from clipbatch.domain.models import Severity

class MockEvent(Event):
    message: str

def test_log_event_reaches_subscriber():
    bus = EventBus()
    lines = []
    bus.subscribe(LogEmitted, lambda e: lines.append((e.severity, e.message)))

    bus.publish(LogEmitted(message="Queued clip.mp4", severity=Severity.SUCCESS))

    assert lines == [(Severity.SUCCESS, "Queued clip.mp4")]

def test_every_subscriber_sees_the_event_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe(EntryQueued, lambda e: seen.append(("reporter", e.queue_depth)))
    bus.subscribe(EntryQueued, lambda e: seen.append(("status", e.queue_depth)))

    bus.publish(EntryQueued(path=Path("/w/S1---A/a.mp4"), identity_key="k", event_type="add", queue_depth=2))

    assert seen == [("reporter", 2), ("status", 2)]

def test_subscribe_as_decorator():
    bus = EventBus()
    received = []

    @bus.subscribe(MockEvent)
    def on_event(event: MockEvent):
        received.append(event.message)

    bus.publish(MockEvent(message="decorator"))
    assert received == ["decorator"]

def test_event_bus_dispatches_by_exact_type():
    bus = EventBus()
    received = []
    bus.subscribe(LogEmitted, received.append)

    bus.publish(MockEvent(message="ignored"))

    assert received == []

def test_event_bus_unsubscribe():
    bus = EventBus()
    received = []
    bus.subscribe(MockEvent, received.append)

    assert bus.unsubscribe(MockEvent, received.append) is True
    assert bus.unsubscribe(MockEvent, received.append) is False
    bus.publish(MockEvent(message="gone"))

    assert received == []

def test_failing_subscriber_does_not_block_others(caplog):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(MockEvent, broken)
    bus.subscribe(MockEvent, received.append)

    with caplog.at_level(logging.ERROR):
        bus.publish(MockEvent(message="still delivered"))

    assert len(received) == 1
    assert "boom" in caplog.text
