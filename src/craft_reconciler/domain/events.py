"""Domain event definitions and serialization."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from craft_reconciler.domain import ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class EventType(StrEnum):
    """Lifecycle events emitted by the reconciler."""

    CYCLE_STARTED = "CycleStarted"
    CYCLE_COMPLETED = "CycleCompleted"

    RECIPE_LEARNED = "RecipeLearned"
    RECIPE_FAULTED = "RecipeFaulted"

    CRAFT_DISPATCHED = "CraftDispatched"
    CRAFT_COMPLETED = "CraftCompleted"
    CRAFT_FAILED = "CraftFailed"

    CATALOG_CHANGED = "CatalogChanged"
    STATUS_UPDATED = "StatusUpdated"

    FATAL_ERROR = "FatalError"


@dataclass(slots=True)
class ReconcilerEvent:
    """Serializable event envelope."""

    event_id: str
    event_type: EventType
    timestamp: datetime
    correlation_id: str | None
    payload: dict[str, JSONValue]

    def __post_init__(self) -> None:
        ids.validate_event_id(self.event_id)
        self.event_type = _as_event_type(self.event_type, "ReconcilerEvent.event_type")
        self.timestamp = _as_utc_datetime(self.timestamp, "ReconcilerEvent.timestamp")
        self.payload = _as_json_object(self.payload, "ReconcilerEvent.payload")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(timespec="microseconds").replace("+00:00", "Z"),
            "correlation_id": self.correlation_id,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _as_event_type(value: object, path: str) -> EventType:
    if isinstance(value, EventType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string event type, got {type(value).__name__}")
    try:
        return EventType(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in EventType)
        raise ValueError(f"{path}: unsupported event type {value!r}; allowed: {allowed}") from exc


def _as_utc_datetime(value: object, path: str) -> datetime:
    if not isinstance(value, datetime):
        raise ValueError(f"{path}: expected datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{path}: datetime must be timezone-aware UTC")
    return value.astimezone(UTC)


def _as_json_value(value: object, path: str, *, depth: int = 0) -> JSONValue:
    if depth > 16:
        raise ValueError(f"{path}: JSON nesting too deep")

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{path}: float value must be finite")
        return value
    if isinstance(value, (list, tuple)):
        return [
            _as_json_value(item, f"{path}[{idx}]", depth=depth + 1)
            for idx, item in enumerate(value)
        ]
    if isinstance(value, dict):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{path}: object keys must be strings")
            out[key] = _as_json_value(item, f"{path}.{key}", depth=depth + 1)
        return out
    raise ValueError(f"{path}: value is not JSON-serializable ({type(value).__name__})")


def _as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    parsed = _as_json_value(value, path)
    if not isinstance(parsed, dict):
        raise ValueError(f"{path}: expected object")
    return parsed


__all__ = ["EventType", "JSONValue", "ReconcilerEvent"]
