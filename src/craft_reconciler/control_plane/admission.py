"""Admission policy gating how many crafting jobs may share the CPU pool."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from craft_reconciler.domain.models import Cpu


@dataclass(frozen=True, slots=True)
class PoolSnapshot:
    """CPU pool counts taken immediately before a dispatch decision."""

    total: int
    free: int

    def __post_init__(self) -> None:
        if self.total < 0 or self.free < 0:
            raise ValueError("pool counts must be >= 0")
        if self.free > self.total:
            raise ValueError(f"free CPUs ({self.free}) exceed pool size ({self.total})")

    @classmethod
    def from_cpus(cls, cpus: Iterable[Cpu | Mapping[str, object]]) -> PoolSnapshot:
        total = 0
        free = 0
        for cpu in cpus:
            busy = cpu.busy if isinstance(cpu, Cpu) else bool(cpu.get("busy", False))
            total += 1
            if not busy:
                free += 1
        return cls(total=total, free=free)


def admit(total: int, ongoing: int, free: int, allowed_cpus: float) -> bool:
    """Return whether one more job may start.

    ``allowed_cpus`` selects the policy:

    - ``0``: unlimited
    - ``(0, 1)``: cap the share of the pool used by our jobs
    - ``>= 1``: cap the number of concurrent jobs
    - ``(-1, 0)``: keep a share of the pool free
    - ``<= -1``: keep that many CPUs free

    A free CPU with nothing of ours in flight is always admitted. Fractional
    thresholds are compared exactly, without rounding.
    """

    if free == 0:
        return False
    if ongoing == 0:
        return True
    if allowed_cpus == 0:
        return True
    if 0 < allowed_cpus < 1:
        return (ongoing + 1) / total <= allowed_cpus
    if allowed_cpus >= 1:
        return ongoing < allowed_cpus
    if allowed_cpus > -1:
        return (free - 1) / total <= -allowed_cpus
    return free > -allowed_cpus


@dataclass(frozen=True, slots=True)
class AdmissionPolicy:
    allowed_cpus: float

    def __post_init__(self) -> None:
        value = self.allowed_cpus
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"allowed_cpus must be a number, got {type(value).__name__}")
        if not math.isfinite(value):
            raise ValueError("allowed_cpus must be finite")

    def permits(self, pool: PoolSnapshot, ongoing: int) -> bool:
        return admit(pool.total, ongoing, pool.free, self.allowed_cpus)


__all__ = ["AdmissionPolicy", "PoolSnapshot", "admit"]
