"""Unit tests for the crafting lifecycle tracker."""

from __future__ import annotations

import pytest

from craft_reconciler.backend.base import BackendError, FatalBackendError
from craft_reconciler.backend.simulated import JobOutcome, SimulatedNetwork
from craft_reconciler.control_plane.lifecycle import CANCELED_MESSAGE, check_state
from craft_reconciler.domain.models import CraftState, FaultKind


class _ExplodingHandle:
    def is_canceled(self) -> bool:
        return False

    def is_done(self) -> bool:
        raise BackendError("component unavailable", operation="is_done")


def test_recipe_without_handle_is_idle(make_recipe) -> None:
    assert check_state(make_recipe("a:b")) is CraftState.IDLE


def test_running_job_is_pending(network: SimulatedNetwork, make_recipe) -> None:
    recipe = make_recipe("a:b", wanted=5)
    handle = network.add_pattern("a:b", craft_polls=3).request(5)
    recipe.crafting_handle = handle

    assert check_state(recipe) is CraftState.PENDING
    assert recipe.crafting_handle is handle
    assert recipe.error is None


def test_finished_job_clears_handle_without_error(network: SimulatedNetwork, make_recipe) -> None:
    recipe = make_recipe("a:b", wanted=5)
    recipe.stored = 1
    recipe.crafting_handle = network.add_pattern("a:b", craft_polls=0).request(4)

    assert check_state(recipe) is CraftState.COMPLETED
    assert recipe.crafting_handle is None
    assert recipe.error is None
    assert recipe.needed > 0


def test_canceled_job_records_job_fault(network: SimulatedNetwork, make_recipe) -> None:
    recipe = make_recipe("a:b", wanted=5)
    recipe.crafting_handle = network.add_pattern(
        "a:b", craft_polls=0, outcome=JobOutcome.CANCELED
    ).request(5)

    assert check_state(recipe) is CraftState.FAILED
    assert recipe.crafting_handle is None
    assert recipe.error == CANCELED_MESSAGE
    assert recipe.fault is not None and recipe.fault.kind is FaultKind.JOB


def test_cancellation_error_reason_becomes_the_fault(
    network: SimulatedNetwork, make_recipe
) -> None:
    recipe = make_recipe("a:b", wanted=5)
    recipe.crafting_handle = network.add_pattern(
        "a:b",
        craft_polls=0,
        outcome=JobOutcome.CANCEL_ERROR,
        reason="missing: 3x minecraft:iron_ingot",
    ).request(5)

    assert check_state(recipe) is CraftState.FAILED
    assert recipe.error == "missing: 3x minecraft:iron_ingot"


def test_completion_check_error_is_fatal(make_recipe) -> None:
    recipe = make_recipe("a:b", wanted=5)
    recipe.crafting_handle = _ExplodingHandle()

    with pytest.raises(FatalBackendError, match="is_done failed for a:b:0: component unavailable"):
        check_state(recipe)
