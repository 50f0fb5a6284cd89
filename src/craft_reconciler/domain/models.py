"""Dataclass domain models for the catalog, network snapshots, and status."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, NoReturn

from craft_reconciler.domain.identity import ItemIdentity, floor_damage, identity_key

if TYPE_CHECKING:
    from craft_reconciler.backend.base import JobHandle

_MAX_LABEL = 256

# Record fields owned by NetworkItem; everything else lands in ``extra``.
_NETWORK_ITEM_FIELDS = frozenset(
    {"name", "damage", "label", "size", "craftable", "isCraftable", "has_tag", "hasTag"}
)


class CraftState(StrEnum):
    """Outcome of one lifecycle check on a recipe's job handle."""

    IDLE = "idle"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_transition(self) -> bool:
        return self in (CraftState.COMPLETED, CraftState.FAILED)


class FaultKind(StrEnum):
    RESOLUTION = "resolution"
    JOB = "job"


@dataclass(frozen=True, slots=True)
class RecipeFault:
    """Recoverable per-recipe error. Cleared at the start of every full pass."""

    kind: FaultKind
    message: str

    def __str__(self) -> str:
        return self.message


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


@dataclass(frozen=True, slots=True)
class NetworkItem:
    """One inventory record reported by the crafting network."""

    name: str
    damage: float = 0
    label: str = ""
    size: float = 0
    craftable: bool = False
    has_tag: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return identity_key(self.name, self.damage, self.label, with_label=self.has_tag)

    def to_record(self) -> dict[str, Any]:
        """Return the full record used as the ``haystack`` in identity matching."""
        record: dict[str, Any] = dict(self.extra)
        record.update(
            {
                "name": self.name,
                "damage": self.damage,
                "label": self.label,
                "size": self.size,
                "craftable": self.craftable,
                "has_tag": self.has_tag,
            }
        )
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, object]) -> NetworkItem:
        """Build an item from a raw driver record (snake_case or camelCase flags)."""
        name = record.get("name")
        if not isinstance(name, str) or not name:
            _fail("NetworkItem.name", "expected non-empty string")
        damage = _as_number(record.get("damage", 0), "NetworkItem.damage")
        size = _as_number(record.get("size", 0), "NetworkItem.size")
        label = record.get("label", "")
        if not isinstance(label, str):
            _fail("NetworkItem.label", f"expected string, got {type(label).__name__}")
        craftable = record.get("craftable", record.get("isCraftable", False))
        has_tag = record.get("has_tag", record.get("hasTag", False))
        extra = {key: value for key, value in record.items() if key not in _NETWORK_ITEM_FIELDS}
        return cls(
            name=name,
            damage=damage,
            label=label,
            size=size,
            craftable=bool(craftable),
            has_tag=bool(has_tag),
            extra=extra,
        )


@dataclass(frozen=True, slots=True)
class Cpu:
    busy: bool
    name: str | None = None


@dataclass(slots=True, eq=False)
class Recipe:
    """Catalog entry: a desired stock level for one item identity.

    Only ``identity``, ``label`` and ``wanted`` are durable. ``stored``,
    ``fault`` and ``crafting_handle`` are recomputed by the reconciler.
    """

    identity: ItemIdentity
    label: str
    wanted: int = 0
    stored: int = 0
    crafting_handle: JobHandle | None = field(default=None, repr=False)
    fault: RecipeFault | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.label, str) or not self.label.strip():
            _fail("Recipe.label", "expected non-empty string")
        if len(self.label) > _MAX_LABEL:
            _fail("Recipe.label", f"must be <= {_MAX_LABEL} characters")
        self.wanted = validate_wanted(self.wanted)

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def error(self) -> str | None:
        return None if self.fault is None else self.fault.message

    @property
    def is_crafting(self) -> bool:
        return self.crafting_handle is not None

    @property
    def needed(self) -> int:
        return self.wanted - self.stored

    def set_fault(self, kind: FaultKind, message: str) -> None:
        self.fault = RecipeFault(kind=kind, message=message)

    def clear_fault(self) -> None:
        self.fault = None

    def to_record(self) -> dict[str, Any]:
        """Durable fields only: identity, label, wanted."""
        return {
            "item": self.identity.to_record(),
            "label": self.label,
            "wanted": self.wanted,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, object], *, path: str = "Recipe") -> Recipe:
        item = record.get("item")
        if not isinstance(item, Mapping):
            _fail(f"{path}.item", "expected object")
        try:
            identity = ItemIdentity.from_record(item)
        except ValueError as exc:
            _fail(f"{path}.item", str(exc))
        label = record.get("label")
        if not isinstance(label, str):
            _fail(f"{path}.label", "expected string")
        wanted = record.get("wanted", 0)
        if isinstance(wanted, bool) or not isinstance(wanted, int):
            _fail(f"{path}.wanted", f"expected integer, got {type(wanted).__name__}")
        return cls(identity=identity, label=label, wanted=wanted)


@dataclass(frozen=True, slots=True)
class Status:
    """Aggregate published at the end of every full cycle."""

    cycle_duration: float = 0.0
    cpu_total: int = 0
    cpu_free: int = 0
    count_error: int = 0
    count_crafting: int = 0
    count_queued: int = 0

    def describe(self) -> str:
        return (
            f"{self.cpu_free} CPUs free of {self.cpu_total}. "
            f"{self.count_error} errors, {self.count_crafting} crafting, "
            f"{self.count_queued} queued. Cycle: {self.cycle_duration * 1000:.0f} ms."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_duration": self.cycle_duration,
            "cpu_total": self.cpu_total,
            "cpu_free": self.cpu_free,
            "count_error": self.count_error,
            "count_crafting": self.count_crafting,
            "count_queued": self.count_queued,
        }


def validate_wanted(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail("wanted", f"expected integer, got {type(value).__name__}")
    if value < 0:
        _fail("wanted", "must be >= 0")
    return value


def display_label(label: str | None, fallback: str) -> str:
    """Return a label accepted by :class:`Recipe`: blank falls back, long is cut."""
    text = label if label and label.strip() else fallback
    return text[:_MAX_LABEL]


def floor_size(value: float) -> int:
    return max(0, math.floor(value))


def _as_number(value: object, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        _fail(path, "must be finite")
    return value


__all__ = [
    "CraftState",
    "Cpu",
    "FaultKind",
    "NetworkItem",
    "Recipe",
    "RecipeFault",
    "Status",
    "display_label",
    "floor_damage",
    "floor_size",
    "validate_wanted",
]
