"""
craft-reconciler — deterministic in-memory crafting network

File: src/craft_reconciler/backend/simulated.py

Purpose
- Offline ``CraftingNetwork`` for ``craftrec run --simulate``, demos, and tests.

Behavior
- Jobs progress one step per ``is_done()`` poll and deliver their output to
  the inventory when they finish.
- A CPU is busy while it hosts an unfinished job; ``reserved_busy`` marks
  additional CPUs busy to mimic work started by other players.
- Failures are injected per call site: inventory snapshot, pattern lookup
  per identity key, and per pattern job outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from craft_reconciler.backend.base import BackendError
from craft_reconciler.domain.identity import ItemIdentity, contains, floor_damage, identity_key
from craft_reconciler.domain.models import Cpu, NetworkItem

logger = logging.getLogger(__name__)


class JobOutcome(StrEnum):
    """How a simulated job ends once its polls are used up."""

    DONE = "done"
    CANCELED = "canceled"
    CANCEL_ERROR = "cancel_error"
    DONE_ERROR = "done_error"


@dataclass(slots=True)
class SimulatedJob:
    """Job handle whose state advances each time ``is_done`` is polled."""

    network: SimulatedNetwork = field(repr=False)
    output: ItemIdentity
    amount: int
    polls_remaining: int
    outcome: JobOutcome = JobOutcome.DONE
    reason: str | None = None
    finished: bool = False

    @property
    def settled(self) -> bool:
        return self.polls_remaining <= 0

    def is_canceled(self) -> bool:
        if not self.settled:
            return False
        if self.outcome is JobOutcome.CANCEL_ERROR:
            raise BackendError(self.reason or "crafting job errored", operation="is_canceled")
        return self.outcome is JobOutcome.CANCELED

    def is_done(self) -> bool:
        if self.polls_remaining > 0:
            self.polls_remaining -= 1
            return False
        if self.outcome is JobOutcome.DONE_ERROR:
            raise BackendError(self.reason or "lost contact with crafting CPU", operation="is_done")
        if self.outcome is not JobOutcome.DONE:
            return False
        if not self.finished:
            self.finished = True
            self.network.deliver(self.output, self.amount)
        return True


@dataclass(slots=True)
class SimulatedPattern:
    output: ItemIdentity
    network: SimulatedNetwork = field(repr=False)
    craft_polls: int = 1
    outcome: JobOutcome = JobOutcome.DONE
    reason: str | None = None
    requests: list[int] = field(default_factory=list)

    def request(self, amount: int) -> SimulatedJob:
        if amount <= 0:
            raise BackendError(f"invalid crafting amount {amount}", operation="request")
        self.requests.append(amount)
        job = SimulatedJob(
            network=self.network,
            output=self.output,
            amount=amount,
            polls_remaining=self.craft_polls,
            outcome=self.outcome,
            reason=self.reason,
        )
        self.network.jobs.append(job)
        logger.debug(
            "simulated job submitted",
            extra={"item": self.output.key, "amount": amount, "polls": self.craft_polls},
        )
        return job


@dataclass(slots=True)
class _StockEntry:
    name: str
    damage: int
    label: str
    size: int
    has_tag: bool
    craftable: bool
    extra: dict[str, Any]

    def identity_record(self) -> dict[str, Any]:
        return {"name": self.name, "damage": self.damage, "label": self.label}


class SimulatedNetwork:
    """In-memory crafting network implementing every backend protocol."""

    def __init__(self, *, cpu_count: int = 4, reserved_busy: int = 0) -> None:
        if cpu_count < 0:
            raise ValueError("cpu_count must be >= 0")
        self.cpu_count = cpu_count
        self.reserved_busy = reserved_busy
        self.jobs: list[SimulatedJob] = []
        self.inventory_error: str | None = None
        self.cpu_error: str | None = None
        self.lookup_errors: dict[str, str] = {}
        self.lookup_calls: list[str] = []
        self._stock: list[_StockEntry] = []
        self._patterns: list[SimulatedPattern] = []

    def add_item(
        self,
        name: str,
        damage: float = 0,
        *,
        size: int = 0,
        label: str | None = None,
        has_tag: bool = False,
        craftable: bool = False,
        **extra: Any,
    ) -> None:
        self._stock.append(
            _StockEntry(
                name=name,
                damage=floor_damage(damage),
                label=label if label is not None else name,
                size=size,
                has_tag=has_tag,
                craftable=craftable,
                extra=dict(extra),
            )
        )

    def add_pattern(
        self,
        name: str,
        damage: float = 0,
        *,
        label: str | None = None,
        craft_polls: int = 1,
        outcome: JobOutcome | str = JobOutcome.DONE,
        reason: str | None = None,
    ) -> SimulatedPattern:
        pattern = SimulatedPattern(
            output=ItemIdentity(name=name, damage=floor_damage(damage), label=label),
            network=self,
            craft_polls=max(0, craft_polls),
            outcome=JobOutcome(outcome),
            reason=reason,
        )
        self._patterns.append(pattern)
        return pattern

    @property
    def active_jobs(self) -> list[SimulatedJob]:
        return [job for job in self.jobs if not job.settled]

    def items_in_network(self) -> list[NetworkItem]:
        if self.inventory_error is not None:
            raise BackendError(self.inventory_error, operation="items_in_network")
        return [
            NetworkItem(
                name=entry.name,
                damage=entry.damage,
                label=entry.label,
                size=entry.size,
                craftable=entry.craftable or bool(self._patterns_matching(entry.identity_record())),
                has_tag=entry.has_tag,
                extra=dict(entry.extra),
            )
            for entry in self._stock
        ]

    def cpus(self) -> list[Cpu]:
        if self.cpu_error is not None:
            raise BackendError(self.cpu_error, operation="cpus")
        busy = min(self.cpu_count, self.reserved_busy + len(self.active_jobs))
        return [Cpu(busy=index < busy, name=f"cpu-{index + 1}") for index in range(self.cpu_count)]

    def patterns_for(self, identity: ItemIdentity) -> list[SimulatedPattern]:
        self.lookup_calls.append(identity.key)
        error = self.lookup_errors.get(identity.key)
        if error is not None:
            raise BackendError(error, operation="patterns_for")
        return [
            pattern
            for pattern in self._patterns
            if contains(pattern.output.to_record(), identity.to_record())
        ]

    def deliver(self, output: ItemIdentity, amount: int) -> None:
        """Add finished job output to the stock, creating the entry on first delivery."""

        for entry in self._stock:
            if contains(entry.identity_record(), output.to_record()):
                entry.size += amount
                return
        self.add_item(
            output.name,
            output.damage,
            size=amount,
            label=output.label,
            has_tag=output.label is not None,
        )

    def stock_of(self, name: str, damage: float = 0, label: str | None = None) -> int:
        key = identity_key(name, damage, label, with_label=label is not None)
        return sum(
            entry.size
            for entry in self._stock
            if identity_key(entry.name, entry.damage, entry.label, with_label=label is not None)
            == key
        )

    def _patterns_matching(self, record: Mapping[str, Any]) -> list[SimulatedPattern]:
        return [pattern for pattern in self._patterns if contains(record, pattern.output.to_record())]


def demo_network(
    *,
    cpu_count: int = 5,
    reserved_busy: int = 0,
    craft_polls: int = 2,
) -> SimulatedNetwork:
    """Small factory floor used when no real backend is configured."""

    network = SimulatedNetwork(cpu_count=cpu_count, reserved_busy=reserved_busy)
    network.add_item("minecraft:iron_ingot", size=412, label="Iron Ingot")
    network.add_item("minecraft:redstone", size=96, label="Redstone")
    network.add_item("appliedenergistics2:material", 22, size=12, label="Logic Processor")
    network.add_item("appliedenergistics2:material", 23, size=3, label="Calculation Processor")
    network.add_item("minecraft:piston", size=0, label="Piston")
    network.add_item(
        "minecraft:enchanted_book",
        size=1,
        label="Enchanted Book (Mending)",
        has_tag=True,
    )

    network.add_pattern("appliedenergistics2:material", 22, craft_polls=craft_polls)
    network.add_pattern("appliedenergistics2:material", 23, craft_polls=craft_polls)
    network.add_pattern("minecraft:piston", craft_polls=craft_polls)
    return network


__all__ = [
    "JobOutcome",
    "SimulatedJob",
    "SimulatedNetwork",
    "SimulatedPattern",
    "demo_network",
]
