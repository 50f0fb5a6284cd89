"""Shared fixtures for craft-reconciler unit tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from craft_reconciler.backend.simulated import SimulatedNetwork
from craft_reconciler.domain.identity import ItemIdentity
from craft_reconciler.domain.models import Recipe

RecipeFactory = Callable[..., Recipe]


@pytest.fixture()
def make_recipe() -> RecipeFactory:
    def _make(
        name: str,
        damage: int = 0,
        *,
        wanted: int = 0,
        label: str | None = None,
        tag_label: str | None = None,
    ) -> Recipe:
        return Recipe(
            identity=ItemIdentity(name=name, damage=damage, label=tag_label),
            label=label or tag_label or name,
            wanted=wanted,
        )

    return _make


@pytest.fixture()
def network() -> SimulatedNetwork:
    return SimulatedNetwork(cpu_count=5)
