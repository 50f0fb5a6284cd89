"""
craft-reconciler — end-to-end smoke test

File: tests/smoke/test_end_to_end.py

Purpose
- Serve a catalog against the simulated network until every wanted level is
  met, restart from the persisted catalog, and verify nothing is re-crafted.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from craft_reconciler.backend.simulated import demo_network
from craft_reconciler.control_plane import Reconciler, ReconcilerSettings
from craft_reconciler.domain.events import EventType, ReconcilerEvent
from craft_reconciler.persistence.catalog_store import CatalogStore

pytestmark = pytest.mark.smoke

_FAST = ReconcilerSettings(
    allowed_cpus=-1,
    max_batch=8,
    full_check_interval=0.05,
    crafting_check_interval=0.01,
)


async def _serve_until_satisfied(reconciler: Reconciler) -> list[ReconcilerEvent]:
    events: list[ReconcilerEvent] = []
    reconciler.events.subscribe(None, events.append)

    def _stop_when_satisfied(event: ReconcilerEvent) -> None:
        if all(recipe.stored >= recipe.wanted for recipe in reconciler.catalog):
            reconciler.stop()

    reconciler.events.subscribe(EventType.CYCLE_COMPLETED, _stop_when_satisfied)
    await asyncio.wait_for(reconciler.serve(), timeout=10)
    return events


async def test_serve_fills_every_wanted_level_and_survives_restart(tmp_path: Path) -> None:
    network = demo_network(craft_polls=1)
    store = CatalogStore(tmp_path / "catalog.yaml")

    first = Reconciler(network, settings=_FAST, store=store)
    await first.run_full_cycle(learn=True)
    first.set_wanted("minecraft:piston:0", 20)
    first.set_wanted("appliedenergistics2:material:23", 10)

    events = await _serve_until_satisfied(first)

    assert network.stock_of("minecraft:piston") == 20
    assert network.stock_of("appliedenergistics2:material", 23) == 10
    dispatched = [
        event.payload["amount"]
        for event in events
        if event.event_type is EventType.CRAFT_DISPATCHED
    ]
    assert all(amount <= 8 for amount in dispatched)
    assert not any(event.event_type is EventType.CRAFT_FAILED for event in events)
    assert first.status.count_error == 0

    restarted = Reconciler.from_store(network, store, settings=_FAST)
    status = await restarted.run_full_cycle()

    assert [recipe.wanted for recipe in restarted.catalog] == [0, 10, 20]
    assert status.count_queued == 0
    assert status.count_crafting == 0
    assert network.active_jobs == []
