"""Unit tests for the lazy work-discovery generator."""

from __future__ import annotations

import asyncio
from contextlib import aclosing

import pytest

from craft_reconciler.backend.simulated import SimulatedNetwork
from craft_reconciler.control_plane import discovery
from craft_reconciler.control_plane.discovery import (
    MULTIPLE_PATTERNS_MESSAGE,
    NO_PATTERN_FOUND_MESSAGE,
    WorkCandidate,
    discover_work,
    is_eligible,
)
from craft_reconciler.domain.models import FaultKind, Recipe


async def _collect(catalog: list[Recipe], network: SimulatedNetwork) -> list[WorkCandidate]:
    return [candidate async for candidate in discover_work(catalog, network)]


async def test_yields_each_needy_recipe_in_catalog_order(
    network: SimulatedNetwork, make_recipe
) -> None:
    first = make_recipe("minecraft:piston", wanted=10)
    second = make_recipe("minecraft:hopper", wanted=3)
    second.stored = 1
    network.add_pattern("minecraft:piston")
    network.add_pattern("minecraft:hopper")

    candidates = await _collect([first, second], network)

    assert [(c.recipe, c.needed) for c in candidates] == [(first, 10), (second, 2)]
    assert candidates[0].pattern.output.name == "minecraft:piston"


async def test_skips_satisfied_faulted_and_crafting_recipes(
    network: SimulatedNetwork, make_recipe
) -> None:
    satisfied = make_recipe("a:satisfied", wanted=4)
    satisfied.stored = 4
    faulted = make_recipe("a:faulted", wanted=4)
    faulted.set_fault(FaultKind.RESOLUTION, "no crafting pattern")
    crafting = make_recipe("a:crafting", wanted=4)
    crafting.crafting_handle = network.add_pattern("a:crafting").request(4)
    needy = make_recipe("a:needy", wanted=4)
    network.add_pattern("a:needy")

    candidates = await _collect([satisfied, faulted, crafting, needy], network)

    assert [c.recipe for c in candidates] == [needy]
    assert network.lookup_calls == ["a:needy:0"]
    assert not is_eligible(satisfied)
    assert not is_eligible(faulted)
    assert not is_eligible(crafting)


async def test_zero_or_many_patterns_fault_and_continue(
    network: SimulatedNetwork, make_recipe
) -> None:
    missing = make_recipe("a:missing", wanted=1)
    doubled = make_recipe("a:doubled", wanted=1)
    fine = make_recipe("a:fine", wanted=1)
    network.add_pattern("a:doubled")
    network.add_pattern("a:doubled")
    network.add_pattern("a:fine")

    candidates = await _collect([missing, doubled, fine], network)

    assert [c.recipe for c in candidates] == [fine]
    assert missing.error == NO_PATTERN_FOUND_MESSAGE
    assert doubled.error == MULTIPLE_PATTERNS_MESSAGE
    assert missing.fault is not None and missing.fault.kind is FaultKind.RESOLUTION


async def test_lookup_failure_faults_only_that_recipe(
    network: SimulatedNetwork, make_recipe
) -> None:
    broken = make_recipe("a:broken", wanted=1)
    fine = make_recipe("a:fine", wanted=1)
    network.lookup_errors["a:broken:0"] = "timeout"
    network.add_pattern("a:fine")

    candidates = await _collect([broken, fine], network)

    assert [c.recipe for c in candidates] == [fine]
    assert broken.error == "pattern lookup failed: timeout"


async def test_lookups_happen_only_as_candidates_are_requested(
    network: SimulatedNetwork, make_recipe
) -> None:
    catalog = [make_recipe(f"a:item{index}", wanted=1) for index in range(3)]
    for recipe in catalog:
        network.add_pattern(recipe.identity.name)

    async with aclosing(discover_work(catalog, network)) as finder:
        first = await anext(finder)
        assert first.recipe is catalog[0]
        assert network.lookup_calls == ["a:item0:0"]

    assert network.lookup_calls == ["a:item0:0"]


async def test_dispatched_recipe_is_not_yielded_again(
    network: SimulatedNetwork, make_recipe
) -> None:
    recipe = make_recipe("a:item", wanted=5)
    network.add_pattern("a:item", craft_polls=5)

    seen: list[Recipe] = []
    async for candidate in discover_work([recipe, recipe], network):
        seen.append(candidate.recipe)
        candidate.recipe.crafting_handle = candidate.pattern.request(candidate.needed)

    assert seen == [recipe]


async def test_returns_control_to_the_loop_before_each_lookup(
    network: SimulatedNetwork, make_recipe, monkeypatch: pytest.MonkeyPatch
) -> None:
    catalog = [make_recipe(f"a:item{index}", wanted=1) for index in range(2)]
    order: list[str] = []
    real_sleep = asyncio.sleep

    async def _recording_sleep(delay: float) -> None:
        order.append("yield")
        await real_sleep(delay)

    original_lookup = network.patterns_for

    def _recording_lookup(identity):  # type: ignore[no-untyped-def]
        order.append(f"lookup {identity.name}")
        return original_lookup(identity)

    monkeypatch.setattr(discovery.asyncio, "sleep", _recording_sleep)
    monkeypatch.setattr(network, "patterns_for", _recording_lookup)

    await _collect(catalog, network)

    assert order == ["yield", "lookup a:item0", "yield", "lookup a:item1"]


async def test_recipes_appended_mid_scan_wait_for_the_next_generator(
    network: SimulatedNetwork, make_recipe
) -> None:
    catalog = [make_recipe("a:first", wanted=1)]
    network.add_pattern("a:first")
    network.add_pattern("a:late")

    seen: list[Recipe] = []
    async for candidate in discover_work(catalog, network):
        seen.append(candidate.recipe)
        catalog.append(make_recipe("a:late", wanted=1))

    assert seen == [catalog[0]]
