"""Full matching pass: correlate catalog recipes with a fresh inventory snapshot."""

from __future__ import annotations

import logging
from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass, field

from craft_reconciler.control_plane.lifecycle import check_state
from craft_reconciler.domain.identity import ItemIdentity, contains
from craft_reconciler.domain.models import (
    CraftState,
    FaultKind,
    NetworkItem,
    Recipe,
    display_label,
    floor_size,
)

logger = logging.getLogger(__name__)

NO_PATTERN_MESSAGE = "no crafting pattern"


@dataclass(slots=True)
class _IndexEntry:
    recipes: list[Recipe]
    matches: list[NetworkItem] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class MatchReport:
    """What a matching pass changed besides ``stored`` and ``error``."""

    learned: tuple[Recipe, ...] = ()
    transitions: tuple[tuple[Recipe, CraftState], ...] = ()

    @property
    def faulted(self) -> int:
        return sum(1 for _, state in self.transitions if state is CraftState.FAILED)


def match_catalog(
    catalog: MutableSequence[Recipe],
    items: Sequence[NetworkItem],
    *,
    learn: bool,
) -> MatchReport:
    """Recompute ``stored`` and ``error`` for every recipe; optionally learn new ones.

    New recipes are appended to ``catalog`` and indexed as soon as they are
    created, so a later item with the same key matches the learned entry.
    Recipes are never removed.
    """

    index: dict[str, _IndexEntry] = {}
    for recipe in catalog:
        entry = index.get(recipe.key)
        if entry is None:
            index[recipe.key] = _IndexEntry(recipes=[recipe])
        else:
            entry.recipes.append(recipe)

    learned: list[Recipe] = []
    for item in items:
        key = item.key
        entry = index.get(key)
        if entry is not None:
            entry.matches.append(item)
        elif learn and item.craftable:
            recipe = _learn(item)
            catalog.append(recipe)
            learned.append(recipe)
            index[key] = _IndexEntry(recipes=[recipe], matches=[item])
            logger.info("learned recipe %s", recipe.label, extra={"recipe": recipe.key})

    transitions: list[tuple[Recipe, CraftState]] = []
    for entry in index.values():
        for recipe in entry.recipes:
            state = _reconcile(recipe, entry.matches)
            if state.is_transition:
                transitions.append((recipe, state))

    return MatchReport(learned=tuple(learned), transitions=tuple(transitions))


def _learn(item: NetworkItem) -> Recipe:
    label = display_label(item.label, item.name)
    identity = ItemIdentity(
        name=item.name,
        damage=item.damage,
        label=item.label if item.has_tag else None,
    )
    return Recipe(identity=identity, label=label, wanted=0)


def _reconcile(recipe: Recipe, candidates: Sequence[NetworkItem]) -> CraftState:
    needle = recipe.identity.to_record()
    matches = [item for item in candidates if contains(item.to_record(), needle)]

    recipe.clear_fault()
    # Captures jobs that finished or were canceled between cycles.
    state = check_state(recipe)

    craftable = False
    if not matches:
        recipe.stored = 0
    elif len(matches) == 1:
        recipe.stored = floor_size(matches[0].size)
        craftable = matches[0].craftable
    else:
        recipe.stored = 0
        recipe.set_fault(
            FaultKind.RESOLUTION,
            f"{recipe.identity.short_name} match {len(matches)} items",
        )

    if recipe.fault is None and recipe.wanted > 0 and not craftable:
        recipe.set_fault(FaultKind.RESOLUTION, NO_PATTERN_MESSAGE)

    return state


__all__ = ["NO_PATTERN_MESSAGE", "MatchReport", "match_catalog"]
