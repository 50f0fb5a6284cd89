"""Lazy work discovery: yield dispatchable recipes one at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from craft_reconciler.backend.base import BackendError, Pattern, PatternResolver
from craft_reconciler.domain.models import FaultKind, Recipe

logger = logging.getLogger(__name__)

NO_PATTERN_FOUND_MESSAGE = "no crafting pattern found"
MULTIPLE_PATTERNS_MESSAGE = "multiple crafting patterns"


@dataclass(frozen=True, slots=True)
class WorkCandidate:
    recipe: Recipe
    needed: int
    pattern: Pattern


def is_eligible(recipe: Recipe) -> bool:
    return recipe.fault is None and recipe.crafting_handle is None and recipe.needed > 0


async def discover_work(
    catalog: Sequence[Recipe],
    resolver: PatternResolver,
) -> AsyncIterator[WorkCandidate]:
    """Scan ``catalog`` in order and yield each recipe that can be dispatched now.

    Pattern resolution is the expensive backend call; control returns to the
    event loop right before each one. Recipes with no pattern, several
    patterns, or a failing lookup get a resolution fault and are skipped.

    A new generator is created for every full cycle. The catalog is
    snapshotted on the first step, so recipes learned or removed later are
    picked up by the next cycle.
    """

    for recipe in tuple(catalog):
        if not is_eligible(recipe):
            continue
        needed = recipe.needed

        await asyncio.sleep(0)
        try:
            patterns = resolver.patterns_for(recipe.identity)
        except BackendError as exc:
            _resolution_fault(recipe, f"pattern lookup failed: {exc.detail}")
            continue

        if len(patterns) == 1:
            yield WorkCandidate(recipe=recipe, needed=needed, pattern=patterns[0])
        elif not patterns:
            _resolution_fault(recipe, NO_PATTERN_FOUND_MESSAGE)
        else:
            _resolution_fault(recipe, MULTIPLE_PATTERNS_MESSAGE)


def _resolution_fault(recipe: Recipe, message: str) -> None:
    recipe.set_fault(FaultKind.RESOLUTION, message)
    logger.warning("cannot craft %s: %s", recipe.label, message, extra={"recipe": recipe.key})


__all__ = [
    "MULTIPLE_PATTERNS_MESSAGE",
    "NO_PATTERN_FOUND_MESSAGE",
    "WorkCandidate",
    "discover_work",
    "is_eligible",
]
