"""Item identity keys and structural containment matching."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from craft_reconciler.constants import IDENTITY_KEY_SEPARATOR


@dataclass(frozen=True, slots=True)
class ItemIdentity:
    """Sparse description of an item as stored in the catalog.

    ``label`` is only set for items carrying opaque tag data the network does
    not expose structurally. It then acts as an extra discriminant between
    items sharing ``name`` and ``damage``. Labels are display strings, so the
    discriminant is locale-dependent and can still collide.
    """

    name: str
    damage: int = 0
    label: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("ItemIdentity.name must be a non-empty string")
        object.__setattr__(self, "damage", floor_damage(self.damage))
        if self.label is not None and not isinstance(self.label, str):
            raise ValueError(f"ItemIdentity.label must be a string, got {type(self.label).__name__}")

    @property
    def key(self) -> str:
        return identity_key(self.name, self.damage, self.label, with_label=self.label is not None)

    @property
    def short_name(self) -> str:
        return f"{self.name}{IDENTITY_KEY_SEPARATOR}{self.damage}"

    def to_record(self) -> dict[str, Any]:
        """Return the sparse mapping used as the ``needle`` in :func:`contains`."""
        record: dict[str, Any] = {"name": self.name, "damage": self.damage}
        if self.label is not None:
            record["label"] = self.label
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, object]) -> ItemIdentity:
        name = record.get("name")
        if not isinstance(name, str):
            raise ValueError("item record requires a string 'name'")
        damage = record.get("damage", 0)
        if isinstance(damage, bool) or not isinstance(damage, (int, float)):
            raise ValueError("item record 'damage' must be a number")
        label = record.get("label")
        if label is not None and not isinstance(label, str):
            raise ValueError("item record 'label' must be a string")
        return cls(name=name, damage=floor_damage(damage), label=label)


def floor_damage(value: float) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"damage must be a number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("damage must be finite")
    return math.floor(value)


def identity_key(name: str, damage: float, label: str | None, *, with_label: bool) -> str:
    """Return the index key ``name:floor(damage)[:label]``."""

    key = f"{name}{IDENTITY_KEY_SEPARATOR}{floor_damage(damage)}"
    if with_label:
        key = f"{key}{IDENTITY_KEY_SEPARATOR}{label or ''}"
    return key


def contains(haystack: object, needle: object) -> bool:
    """Return ``True`` when every field of ``needle`` is present and equal in ``haystack``.

    Mappings are compared key by key and recursively; keys only present in
    ``haystack`` are ignored. Sequences (other than strings) are compared
    position by position with the same rule. Anything else must be equal.
    """

    if haystack == needle:
        return True

    if isinstance(needle, Mapping):
        if not isinstance(haystack, Mapping):
            return False
        for key, value in needle.items():
            if key not in haystack:
                return False
            if not contains(haystack[key], value):
                return False
        return True

    if _is_sequence(needle):
        if not _is_sequence(haystack) or len(haystack) < len(needle):
            return False
        return all(contains(haystack[index], value) for index, value in enumerate(needle))

    return False


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


__all__ = [
    "ItemIdentity",
    "contains",
    "floor_damage",
    "identity_key",
]
