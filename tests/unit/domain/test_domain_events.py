"""Unit tests for the reconciler event envelope."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from craft_reconciler.domain import ids
from craft_reconciler.domain.events import EventType, ReconcilerEvent


def _event(**overrides: object) -> ReconcilerEvent:
    fields: dict[str, object] = {
        "event_id": ids.generate_event_id(),
        "event_type": EventType.CRAFT_DISPATCHED,
        "timestamp": datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        "correlation_id": None,
        "payload": {"recipe": "minecraft:piston:0", "amount": 64},
    }
    fields.update(overrides)
    return ReconcilerEvent(**fields)  # type: ignore[arg-type]


def test_event_type_accepts_string_values() -> None:
    event = _event(event_type="CraftCompleted")
    assert event.event_type is EventType.CRAFT_COMPLETED


def test_event_to_json_is_deterministic() -> None:
    event = _event()
    decoded = json.loads(event.to_json())

    assert decoded["event_type"] == "CraftDispatched"
    assert decoded["timestamp"] == "2026-03-01T12:00:00.000000Z"
    assert decoded["payload"] == {"amount": 64, "recipe": "minecraft:piston:0"}
    assert event.to_json() == event.to_json()


def test_event_rejects_unknown_type() -> None:
    with pytest.raises(ValueError, match="unsupported event type"):
        _event(event_type="RunStarted")


def test_event_rejects_naive_timestamp() -> None:
    with pytest.raises(ValueError, match="timestamp"):
        _event(timestamp=datetime(2026, 3, 1, 12, 0))


def test_event_rejects_non_json_payload() -> None:
    with pytest.raises(ValueError, match="payload"):
        _event(payload={"handle": object()})
