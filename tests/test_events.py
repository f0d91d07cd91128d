"""Tests for the event pub/sub system."""

from webnovel_translator.services.events import EventBus, EventType, RunEvent


def test_event_bus_subscribe_and_emit():
    """Synchronous callback receives events."""
    received = []
    bus = EventBus()
    bus.subscribe(lambda event: received.append(event))
    bus.emit(RunEvent(type="test", data={"key": "value"}))
    assert len(received) == 1
    assert received[0].type == "test"
    assert received[0].data["key"] == "value"


def test_event_bus_unsubscribe():
    """Unsubscribed callback no longer receives events."""
    received = []
    bus = EventBus()
    sub_id = bus.subscribe(received.append)
    bus.emit(RunEvent(type="first"))
    bus.unsubscribe(sub_id)
    bus.emit(RunEvent(type="second"))
    assert [event.type for event in received] == ["first"]


def test_failing_subscriber_does_not_block_others():
    """One broken subscriber does not stop delivery."""
    received = []

    def broken(event):
        raise RuntimeError("display crashed")

    bus = EventBus()
    bus.subscribe(broken)
    bus.subscribe(received.append)
    bus.emit(RunEvent(type="chapter_translated"))
    assert len(received) == 1


def test_run_event_to_dict():
    """Events serialize to plain dicts."""
    event = RunEvent(type="chapter_translated", data={"chapter": 5}, run_id="abc123")
    d = event.to_dict()
    assert d["type"] == "chapter_translated"
    assert d["data"] == {"chapter": 5}
    assert d["run_id"] == "abc123"
    assert isinstance(d["timestamp"], float)


def test_subscribe_filters_types():
    """Subscribers can ask for specific event types only."""
    received = []
    bus = EventBus()
    bus.subscribe(received.append, types=[EventType.CHAPTER_FAILED])
    bus.emit(RunEvent(type=EventType.CHAPTER_STARTED))
    bus.emit(RunEvent(type=EventType.CHAPTER_FAILED, data={"chapter": 2}))
    assert [event.data["chapter"] for event in received] == [2]


def test_event_type_compares_to_plain_strings():
    """Enum members serialize and compare as their string value."""
    event = RunEvent(type=EventType.RUN_HALTED)
    assert event.type == "run_halted"
    assert event.to_dict()["type"] == "run_halted"
