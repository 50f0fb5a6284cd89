"""Unit tests for the full matching pass."""

from __future__ import annotations

import pytest

from craft_reconciler.backend.simulated import JobOutcome, SimulatedNetwork
from craft_reconciler.control_plane.matcher import NO_PATTERN_MESSAGE, match_catalog
from craft_reconciler.domain.models import CraftState, FaultKind, NetworkItem, Recipe


def _item(name: str, damage: int = 0, **fields: object) -> NetworkItem:
    return NetworkItem(name=name, damage=damage, **fields)  # type: ignore[arg-type]


def _snapshot(catalog: list[Recipe]) -> list[tuple[str, str, int, int, str | None]]:
    return [(r.key, r.label, r.wanted, r.stored, r.error) for r in catalog]


def test_single_match_sets_floored_stored(make_recipe) -> None:
    recipe = make_recipe("minecraft:piston", wanted=10)
    catalog = [recipe]

    match_catalog(catalog, [_item("minecraft:piston", size=17.9, craftable=True)], learn=False)

    assert recipe.stored == 17
    assert recipe.error is None


def test_no_match_sets_zero_and_flags_missing_pattern_when_wanted(make_recipe) -> None:
    wanted = make_recipe("minecraft:piston", wanted=10)
    idle = make_recipe("minecraft:sticky_piston", wanted=0)
    wanted.stored = 99
    catalog = [wanted, idle]

    match_catalog(catalog, [], learn=False)

    assert wanted.stored == 0
    assert wanted.error == NO_PATTERN_MESSAGE
    assert wanted.fault is not None and wanted.fault.kind is FaultKind.RESOLUTION
    assert idle.stored == 0
    assert idle.error is None


def test_uncraftable_match_with_demand_is_flagged(make_recipe) -> None:
    recipe = make_recipe("minecraft:diamond", wanted=1)

    match_catalog([recipe], [_item("minecraft:diamond", size=3)], learn=False)

    assert recipe.stored == 3
    assert recipe.error == NO_PATTERN_MESSAGE


def test_ambiguous_match_reports_count_and_zero_stored(make_recipe) -> None:
    recipe = make_recipe("minecraft:potion", 0, wanted=4)
    items = [
        _item("minecraft:potion", label="Potion of Healing", size=3, craftable=True),
        _item("minecraft:potion", label="Potion of Swiftness", size=5, craftable=True),
    ]

    match_catalog([recipe], items, learn=False)

    assert recipe.stored == 0
    assert recipe.error == "minecraft:potion:0 match 2 items"


def test_label_discriminant_resolves_tagged_items(make_recipe) -> None:
    mending = make_recipe("minecraft:enchanted_book", wanted=1, tag_label="Mending")
    items = [
        _item("minecraft:enchanted_book", label="Mending", has_tag=True, size=2, craftable=True),
        _item("minecraft:enchanted_book", label="Unbreaking", has_tag=True, size=9),
    ]

    match_catalog([mending], items, learn=False)

    assert mending.stored == 2
    assert mending.error is None


def test_learning_appends_craftable_items_with_zero_wanted() -> None:
    catalog: list[Recipe] = []
    items = [
        _item("minecraft:piston", label="Piston", size=1, craftable=True),
        _item("minecraft:hopper", label="Hopper", size=0, craftable=True),
        _item("appliedenergistics2:material", 22, label="Logic Processor", craftable=True),
        _item("minecraft:dirt", label="Dirt", size=640),
    ]

    report = match_catalog(catalog, items, learn=True)

    assert [recipe.label for recipe in catalog] == ["Piston", "Hopper", "Logic Processor"]
    assert report.learned == tuple(catalog)
    assert all(recipe.wanted == 0 for recipe in catalog)
    assert catalog[0].stored == 1
    assert all(recipe.error is None for recipe in catalog)


def test_learning_keeps_label_only_for_tagged_items() -> None:
    catalog: list[Recipe] = []
    items = [
        _item("minecraft:enchanted_book", label="Mending", has_tag=True, craftable=True),
        _item("minecraft:piston", label="", craftable=True),
    ]

    match_catalog(catalog, items, learn=True)

    assert catalog[0].identity.label == "Mending"
    assert catalog[0].key == "minecraft:enchanted_book:0:Mending"
    assert catalog[1].identity.label is None
    assert catalog[1].label == "minecraft:piston"


@pytest.mark.parametrize(
    ("raw_label", "expected_label"),
    [("x" * 300, "x" * 256), ("   ", "mod:thing")],
)
def test_learning_accepts_unusual_labels(raw_label: str, expected_label: str) -> None:
    catalog: list[Recipe] = []
    items = [_item("mod:thing", label=raw_label, has_tag=True, size=3, craftable=True)]

    report = match_catalog(catalog, items, learn=True)

    (learned,) = report.learned
    assert learned.label == expected_label
    assert learned.identity.label == raw_label
    assert learned.stored == 3
    assert learned.error is None

    match_catalog(catalog, items, learn=True)

    assert catalog == [learned]
    assert learned.stored == 3


def test_learned_entry_is_indexed_immediately() -> None:
    catalog: list[Recipe] = []
    items = [
        _item("minecraft:potion", label="Healing", size=1, craftable=True),
        _item("minecraft:potion", label="Swiftness", size=2, craftable=True),
    ]

    report = match_catalog(catalog, items, learn=True)

    assert len(catalog) == 1
    assert len(report.learned) == 1
    assert catalog[0].error == "minecraft:potion:0 match 2 items"


def test_learning_disabled_leaves_catalog_untouched() -> None:
    catalog: list[Recipe] = []
    match_catalog(catalog, [_item("minecraft:piston", craftable=True)], learn=False)
    assert catalog == []


def test_repeated_pass_without_learning_is_idempotent(make_recipe) -> None:
    catalog = [
        make_recipe("minecraft:piston", wanted=10),
        make_recipe("minecraft:potion", wanted=1),
        make_recipe("minecraft:hopper", wanted=3),
    ]
    items = [
        _item("minecraft:piston", size=4, craftable=True),
        _item("minecraft:potion", label="A", craftable=True),
        _item("minecraft:potion", label="B", craftable=True),
    ]

    match_catalog(catalog, items, learn=False)
    first = _snapshot(catalog)
    match_catalog(catalog, items, learn=False)

    assert _snapshot(catalog) == first


def test_previous_errors_are_cleared_each_pass(make_recipe) -> None:
    recipe = make_recipe("minecraft:piston", wanted=10)
    recipe.set_fault(FaultKind.JOB, "canceled")

    match_catalog([recipe], [_item("minecraft:piston", craftable=True)], learn=False)

    assert recipe.error is None


def test_pass_reports_lifecycle_transitions(network: SimulatedNetwork, make_recipe) -> None:
    done = make_recipe("minecraft:piston", wanted=10)
    canceled = make_recipe("minecraft:hopper", wanted=10)
    done.crafting_handle = network.add_pattern("minecraft:piston", craft_polls=0).request(5)
    canceled.crafting_handle = network.add_pattern(
        "minecraft:hopper", craft_polls=0, outcome=JobOutcome.CANCELED
    ).request(5)
    items = [
        _item("minecraft:piston", craftable=True),
        _item("minecraft:hopper", craftable=True),
    ]

    report = match_catalog([done, canceled], items, learn=False)

    assert report.transitions == (
        (done, CraftState.COMPLETED),
        (canceled, CraftState.FAILED),
    )
    assert report.faulted == 1
    assert canceled.error == "canceled"
    assert done.crafting_handle is None
