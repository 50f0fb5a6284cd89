"""
craft-reconciler — unit tests for the reconciler event bus

File: tests/unit/observability/test_event_bus.py

Purpose
- Validate event bus fanout, subscriber isolation, and replay semantics.

What this test file should cover
- Sync+async subscriber support.
- Subscriber exception isolation.
- Ring-buffer replay ordering and filters.

Non-functional requirements
- No sleep-based synchronization.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

import craft_reconciler.observability as observability_pkg
from craft_reconciler.domain.events import EventType, ReconcilerEvent
from craft_reconciler.observability.events import EventBus


def test_subscribers_receive_events_in_publish_order() -> None:
    bus = EventBus(buffer_size=10)
    sub_a: list[str] = []
    sub_b: list[str] = []

    bus.subscribe(None, lambda event: sub_a.append(event.event_type.value))
    bus.subscribe(None, lambda event: sub_b.append(event.event_type.value))

    bus.emit("CycleStarted", {"learn": False})
    bus.emit(EventType.CYCLE_COMPLETED, {"dispatched": 2})

    assert sub_a == ["CycleStarted", "CycleCompleted"]
    assert sub_b == ["CycleStarted", "CycleCompleted"]
    assert bus.dispatch_errors() == ()


def test_typed_subscription_filters_and_unsubscribe_detaches() -> None:
    bus = EventBus(buffer_size=10)
    failed: list[ReconcilerEvent] = []

    token = bus.subscribe(EventType.CRAFT_FAILED, failed.append)
    bus.emit(EventType.CRAFT_DISPATCHED, {"recipe": "a:b:0", "amount": 4})
    bus.emit(EventType.CRAFT_FAILED, {"recipe": "a:b:0", "reason": "canceled"})

    assert [event.payload["reason"] for event in failed] == ["canceled"]
    assert bus.unsubscribe(token) is True
    assert bus.unsubscribe(token) is False

    bus.emit(EventType.CRAFT_FAILED, {"recipe": "a:b:0", "reason": "again"})
    assert len(failed) == 1


async def test_async_subscriber_supports_publish_async_and_sync_publish() -> None:
    bus = EventBus(buffer_size=10)
    received: list[str] = []

    async def async_sub(event: ReconcilerEvent) -> None:
        received.append(event.event_type.value)

    bus.subscribe(None, async_sub)

    await bus.emit_async(EventType.CRAFT_DISPATCHED, {"amount": 1})
    bus.emit(EventType.CRAFT_COMPLETED, {"recipe": "a:b:0"})

    errors = await bus.drain_async()
    assert errors == ()
    assert received == ["CraftDispatched", "CraftCompleted"]


def test_subscriber_exception_does_not_break_other_subscribers() -> None:
    bus = EventBus(buffer_size=10)
    received: list[str] = []

    def broken(_event: ReconcilerEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe(None, broken)
    bus.subscribe(None, lambda event: received.append(event.event_type.value))

    event = bus.emit(EventType.FATAL_ERROR, {"reason": "x"})

    assert received == ["FatalError"]
    errors = bus.dispatch_errors()
    assert len(errors) == 1
    assert errors[0].event_id == event.event_id
    assert errors[0].target == "broken"
    assert errors[0].error_type == "RuntimeError"
    assert errors[0].message == "boom"


def test_replay_ring_buffer_keeps_latest_events_in_order() -> None:
    bus = EventBus(buffer_size=2)
    bus.emit(EventType.CYCLE_STARTED, {"v": 1})
    bus.emit(EventType.CRAFT_DISPATCHED, {"v": 2})
    bus.emit(EventType.CYCLE_COMPLETED, {"v": 3})

    replay = bus.replay()

    assert [event.event_type.value for event in replay] == ["CraftDispatched", "CycleCompleted"]


def test_replay_filters_by_type_time_and_limit() -> None:
    bus = EventBus(buffer_size=10)
    for index in range(3):
        bus.emit(EventType.STATUS_UPDATED, {"v": index})
    bus.emit(EventType.CATALOG_CHANGED, {"reason": "wanted"})

    statuses = bus.replay(event_type="StatusUpdated", limit=2)
    assert [event.payload["v"] for event in statuses] == [1, 2]
    assert bus.replay(limit=0) == ()

    past = datetime.now(tz=UTC) - timedelta(hours=1)
    future = datetime.now(tz=UTC) + timedelta(hours=1)
    assert len(bus.replay(since=past)) == 4
    assert bus.replay(since=future) == ()


def test_replay_rejects_naive_since() -> None:
    with pytest.raises(ValueError, match="timezone-aware"):
        EventBus().replay(since=datetime(2026, 1, 1))


def test_emit_rejects_unknown_types_and_non_json_payloads() -> None:
    bus = EventBus()

    with pytest.raises(ValueError, match="invalid event_type 'RunStarted'"):
        bus.emit("RunStarted", {})
    with pytest.raises(ValueError, match="not JSON-serializable"):
        bus.emit(EventType.STATUS_UPDATED, {"handle": object()})


@pytest.mark.parametrize("size", [0, -1, True])
def test_buffer_size_must_be_positive_integer(size: object) -> None:
    with pytest.raises(ValueError):
        EventBus(buffer_size=size)  # type: ignore[arg-type]


def test_observability_package_exports_event_bus() -> None:
    bus = observability_pkg.EventBus(buffer_size=2)
    event = bus.emit(EventType.CYCLE_STARTED, {"learn": True}, correlation_id="cyc-test")
    assert bus.replay()[-1] is event
    assert event.correlation_id == "cyc-test"
