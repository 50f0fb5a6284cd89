"""Crafting lifecycle tracker: classify a recipe's in-flight job handle."""

from __future__ import annotations

import logging

from craft_reconciler.backend.base import BackendError, FatalBackendError
from craft_reconciler.domain.models import CraftState, FaultKind, Recipe

logger = logging.getLogger(__name__)

CANCELED_MESSAGE = "canceled"


def check_state(recipe: Recipe) -> CraftState:
    """Poll ``recipe.crafting_handle`` once and apply the outcome to the recipe.

    A canceled job, or one whose cancellation check errors, clears the handle
    and records a job fault. A finished job clears the handle. An error from
    the completion check is a backend failure and raises
    :class:`FatalBackendError`.
    """

    handle = recipe.crafting_handle
    if handle is None:
        return CraftState.IDLE

    try:
        canceled = handle.is_canceled()
        reason = None
    except BackendError as exc:
        canceled = True
        reason = exc.detail

    if canceled:
        recipe.crafting_handle = None
        recipe.set_fault(FaultKind.JOB, reason or CANCELED_MESSAGE)
        logger.warning(
            "crafting of %s failed: %s",
            recipe.label,
            recipe.error,
            extra={"recipe": recipe.key},
        )
        return CraftState.FAILED

    try:
        done = handle.is_done()
    except BackendError as exc:
        raise FatalBackendError(f"is_done failed for {recipe.key}: {exc.detail}") from exc

    if done:
        recipe.crafting_handle = None
        logger.info("crafting of %s is done", recipe.label, extra={"recipe": recipe.key})
        return CraftState.COMPLETED

    return CraftState.PENDING


__all__ = ["CANCELED_MESSAGE", "check_state"]
