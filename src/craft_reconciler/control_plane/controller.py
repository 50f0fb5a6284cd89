"""
craft-reconciler — reconciliation controller

File: src/craft_reconciler/control_plane/controller.py

Purpose
- Own the recipe catalog and the published status for one crafting network.
- Drive full cycles (match, then admit and dispatch) and lightweight polling
  cycles over in-flight jobs.
- Serve both on timers from a single asyncio task, with early wake-ups for
  "run now" and "poll now" requests.

Functional requirements
- Exactly one cycle runs at a time; requests received while a cycle runs are
  coalesced into one follow-up cycle.
- Every dispatch requests ``min(needed, max_batch)`` units and is checked once
  right away so instant failures show up in the same cycle.
- Fatal backend failures emit ``FatalError`` and propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import aclosing, contextmanager
from dataclasses import dataclass

from craft_reconciler.backend.base import BackendError, CraftingNetwork, FatalBackendError
from craft_reconciler.constants import (
    DEFAULT_ALLOWED_CPUS,
    DEFAULT_CRAFTING_CHECK_INTERVAL_S,
    DEFAULT_FULL_CHECK_INTERVAL_S,
    DEFAULT_MAX_BATCH,
)
from craft_reconciler.control_plane.admission import AdmissionPolicy, PoolSnapshot
from craft_reconciler.control_plane.catalog import RecipeCatalog
from craft_reconciler.control_plane.discovery import WorkCandidate, discover_work
from craft_reconciler.control_plane.lifecycle import check_state
from craft_reconciler.control_plane.matcher import MatchReport, match_catalog
from craft_reconciler.domain import ids
from craft_reconciler.domain.events import EventType
from craft_reconciler.domain.models import CraftState, FaultKind, NetworkItem, Recipe, Status
from craft_reconciler.observability.events import EventBus
from craft_reconciler.observability.logging import correlation_scope
from craft_reconciler.persistence.catalog_store import CatalogStore
from craft_reconciler.utils.concurrency import CancellationToken, wait_for_signal

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class ReconcilerSettings:
    """Scheduling knobs read from the ``[reconciler]`` config table."""

    allowed_cpus: float = DEFAULT_ALLOWED_CPUS
    max_batch: int = DEFAULT_MAX_BATCH
    full_check_interval: float = DEFAULT_FULL_CHECK_INTERVAL_S
    crafting_check_interval: float = DEFAULT_CRAFTING_CHECK_INTERVAL_S
    learn_on_start: bool = True

    def __post_init__(self) -> None:
        AdmissionPolicy(self.allowed_cpus)
        if isinstance(self.max_batch, bool) or not isinstance(self.max_batch, int):
            raise ValueError("max_batch must be an integer")
        if self.max_batch < 1:
            raise ValueError("max_batch must be >= 1")
        for name in ("full_check_interval", "crafting_check_interval"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number")
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive number of seconds")

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> ReconcilerSettings:
        section = config.get("reconciler")
        if not isinstance(section, Mapping):
            return cls()
        defaults = cls()
        return cls(
            allowed_cpus=section.get("allowed_cpus", defaults.allowed_cpus),  # type: ignore[arg-type]
            max_batch=section.get("max_batch", defaults.max_batch),  # type: ignore[arg-type]
            full_check_interval=section.get(  # type: ignore[arg-type]
                "full_check_interval", defaults.full_check_interval
            ),
            crafting_check_interval=section.get(  # type: ignore[arg-type]
                "crafting_check_interval", defaults.crafting_check_interval
            ),
            learn_on_start=bool(section.get("learn_on_start", defaults.learn_on_start)),
        )


def summarize(recipes: Iterable[Recipe]) -> tuple[int, int, int]:
    """Return ``(errors, crafting, queued)`` counts; each recipe lands in one bucket."""

    errors = crafting = queued = 0
    for recipe in recipes:
        if recipe.fault is not None:
            errors += 1
        elif recipe.is_crafting:
            crafting += 1
        elif recipe.stored < recipe.wanted:
            queued += 1
    return errors, crafting, queued


class Reconciler:
    """Keeps a crafting network stocked to the levels in its recipe catalog."""

    def __init__(
        self,
        network: CraftingNetwork,
        *,
        settings: ReconcilerSettings | None = None,
        store: CatalogStore | None = None,
        recipes: Iterable[Recipe] = (),
        event_bus: EventBus | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._network = network
        self._settings = settings or ReconcilerSettings()
        self._admission = AdmissionPolicy(self._settings.allowed_cpus)
        self._store = store
        self._catalog = RecipeCatalog(recipes)
        self._events = event_bus or EventBus()
        self._clock = clock
        self._status = Status()
        self._reported_faults: dict[str, str] = {}

        self._token = CancellationToken()
        self._wakeup = asyncio.Event()
        self._full_requested = False
        self._learn_requested = False
        self._poll_requested = False

    @classmethod
    def from_store(
        cls,
        network: CraftingNetwork,
        store: CatalogStore,
        *,
        settings: ReconcilerSettings | None = None,
        event_bus: EventBus | None = None,
        clock: Clock = time.monotonic,
    ) -> Reconciler:
        """Build a reconciler seeded with the persisted catalog."""
        return cls(
            network,
            settings=settings,
            store=store,
            recipes=store.load(),
            event_bus=event_bus,
            clock=clock,
        )

    @property
    def catalog(self) -> RecipeCatalog:
        return self._catalog

    @property
    def status(self) -> Status:
        return self._status

    @property
    def settings(self) -> ReconcilerSettings:
        return self._settings

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def ongoing(self) -> int:
        """Number of catalog recipes holding a live job handle."""
        return sum(1 for recipe in self._catalog if recipe.is_crafting)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_full_cycle(self, *, learn: bool = False) -> Status:
        """Match the catalog against fresh inventory, then dispatch admitted work."""

        cycle_id = ids.generate_cycle_id()
        started = self._clock()
        with correlation_scope(cycle_id=cycle_id), self._fatal_guard(cycle_id):
            self._events.emit(EventType.CYCLE_STARTED, {"learn": learn}, correlation_id=cycle_id)
            logger.debug("full cycle started", extra={"learn": learn})

            report = self._match(learn=learn, cycle_id=cycle_id)
            dispatched = await self._dispatch_work(cycle_id)
            status = self._publish_status(self._clock() - started, cycle_id)

            self._events.emit(
                EventType.CYCLE_COMPLETED,
                {"learned": len(report.learned), "dispatched": dispatched, **status.to_dict()},
                correlation_id=cycle_id,
            )
            logger.info(
                "full cycle finished: %s",
                status.describe(),
                extra={"learned": len(report.learned), "dispatched": dispatched},
            )
        return status

    def refresh(self, *, learn: bool = False) -> Status:
        """Run the matching pass and recompute status without dispatching."""

        cycle_id = ids.generate_cycle_id()
        started = self._clock()
        with correlation_scope(cycle_id=cycle_id), self._fatal_guard(cycle_id):
            self._match(learn=learn, cycle_id=cycle_id)
            return self._publish_status(self._clock() - started, cycle_id)

    def poll_in_flight(self) -> CraftState | None:
        """Lightweight cycle: check in-flight jobs until the first transition.

        A transition requests a full cycle, which re-checks everything, so the
        scan stops there. Returns the transition, or ``None`` if nothing moved.
        """

        with self._fatal_guard(None):
            for recipe in tuple(self._catalog):
                if not recipe.is_crafting:
                    continue
                with correlation_scope(recipe=recipe.key):
                    state = check_state(recipe)
                if state.is_transition:
                    self._publish_transitions(((recipe, state),), None)
                    self.request_full_cycle()
                    return state
        return None

    # ------------------------------------------------------------------
    # Serving loop and signals
    # ------------------------------------------------------------------

    def request_full_cycle(self, *, learn: bool = False) -> None:
        """Ask the serving loop to start a full cycle as soon as it is idle."""
        self._full_requested = True
        self._learn_requested = self._learn_requested or learn
        self._wakeup.set()

    def request_poll(self) -> None:
        """Ask the serving loop to check in-flight jobs without waiting for the interval."""
        self._poll_requested = True
        self._wakeup.set()

    def stop(self) -> None:
        """Stop serving after the cycle in progress, if any, finishes."""
        self._token.cancel()
        self._wakeup.set()

    async def serve(self, *, initial_learn: bool | None = None) -> None:
        """Run full and lightweight cycles on their intervals until :meth:`stop`."""

        settings = self._settings
        learn = settings.learn_on_start if initial_learn is None else initial_learn
        self.request_full_cycle(learn=learn)
        next_full = self._clock()
        next_poll = next_full + settings.crafting_check_interval
        logger.info(
            "reconciler serving",
            extra={
                "full_check_interval": settings.full_check_interval,
                "crafting_check_interval": settings.crafting_check_interval,
                "allowed_cpus": settings.allowed_cpus,
            },
        )

        while not self._token.is_cancelled:
            now = self._clock()
            if self._full_requested or now >= next_full:
                learn = self._learn_requested
                self._full_requested = False
                self._learn_requested = False
                await self.run_full_cycle(learn=learn)
                next_full = self._clock() + settings.full_check_interval
                continue
            if self._poll_requested or now >= next_poll:
                self._poll_requested = False
                self.poll_in_flight()
                next_poll = self._clock() + settings.crafting_check_interval
                continue
            await wait_for_signal(self._wakeup, min(next_full, next_poll) - now)

        logger.info("reconciler stopped", extra={"ongoing": self.ongoing})

    # ------------------------------------------------------------------
    # Catalog editing
    # ------------------------------------------------------------------

    def set_wanted(self, key: str, wanted: object) -> Recipe:
        recipe = self._catalog.set_wanted(key, wanted)
        self.save()
        self._events.emit(
            EventType.CATALOG_CHANGED,
            {"reason": "wanted", "recipe": recipe.key, "wanted": recipe.wanted},
        )
        logger.info(
            "wanted level of %s set to %d",
            recipe.label,
            recipe.wanted,
            extra={"recipe": recipe.key},
        )
        self.request_full_cycle()
        return recipe

    def remove_recipe(self, key: str) -> Recipe:
        recipe = self._catalog.remove(key)
        self._reported_faults.pop(recipe.key, None)
        self.save()
        self._events.emit(EventType.CATALOG_CHANGED, {"reason": "removed", "recipe": recipe.key})
        if recipe.is_crafting:
            logger.warning(
                "removed %s while a job is in flight; it will no longer be tracked",
                recipe.label,
                extra={"recipe": recipe.key},
            )
        else:
            logger.info("removed %s", recipe.label, extra={"recipe": recipe.key})
        return recipe

    def find_recipes(self, text: str = "") -> list[Recipe]:
        return self._catalog.find(text)

    def save(self) -> None:
        """Persist the durable catalog fields; a no-op without a store."""
        if self._store is not None:
            self._store.save(self._catalog)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _match(self, *, learn: bool, cycle_id: str) -> MatchReport:
        items = self._snapshot_inventory()
        report = match_catalog(self._catalog.entries, items, learn=learn)

        for recipe in report.learned:
            self._events.emit(
                EventType.RECIPE_LEARNED,
                {"recipe": recipe.key, "label": recipe.label},
                correlation_id=cycle_id,
            )
        self._publish_transitions(report.transitions, cycle_id)

        if report.learned:
            self.save()
            self._events.emit(
                EventType.CATALOG_CHANGED,
                {"reason": "learned", "added": len(report.learned)},
                correlation_id=cycle_id,
            )
        return report

    def _snapshot_inventory(self) -> list[NetworkItem]:
        try:
            records = self._network.items_in_network()
        except BackendError as exc:
            raise FatalBackendError(f"inventory snapshot failed: {exc.detail}") from exc
        try:
            return [
                record if isinstance(record, NetworkItem) else NetworkItem.from_record(record)
                for record in records
            ]
        except ValueError as exc:
            raise FatalBackendError(f"malformed inventory record: {exc}") from exc

    def _pool(self) -> PoolSnapshot:
        try:
            return PoolSnapshot.from_cpus(self._network.cpus())
        except BackendError as exc:
            raise FatalBackendError(f"cpu pool snapshot failed: {exc.detail}") from exc

    async def _dispatch_work(self, cycle_id: str) -> int:
        dispatched = 0
        async with aclosing(discover_work(self._catalog.entries, self._network)) as finder:
            while self._admission.permits(self._pool(), self.ongoing):
                candidate = await anext(finder, None)
                if candidate is None:
                    break
                # The catalog may have been edited while discovery was suspended.
                if candidate.recipe not in self._catalog:
                    continue
                if self._dispatch(candidate, cycle_id):
                    dispatched += 1
        return dispatched

    def _dispatch(self, candidate: WorkCandidate, cycle_id: str) -> bool:
        recipe = candidate.recipe
        amount = min(candidate.needed, self._settings.max_batch)
        with correlation_scope(recipe=recipe.key):
            try:
                handle = candidate.pattern.request(amount)
            except BackendError as exc:
                recipe.set_fault(FaultKind.JOB, f"crafting request failed: {exc.detail}")
                logger.warning("cannot request %s: %s", recipe.label, exc.detail)
                return False

            recipe.crafting_handle = handle
            logger.info("requested %d %s", amount, recipe.label, extra={"amount": amount})
            self._events.emit(
                EventType.CRAFT_DISPATCHED,
                {"recipe": recipe.key, "label": recipe.label, "amount": amount},
                correlation_id=cycle_id,
            )

            state = check_state(recipe)
        if state.is_transition:
            self._publish_transitions(((recipe, state),), cycle_id)
        return True

    def _publish_transitions(
        self,
        transitions: Sequence[tuple[Recipe, CraftState]],
        cycle_id: str | None,
    ) -> None:
        for recipe, state in transitions:
            if state is CraftState.COMPLETED:
                self._events.emit(
                    EventType.CRAFT_COMPLETED,
                    {"recipe": recipe.key, "label": recipe.label},
                    correlation_id=cycle_id,
                )
            elif state is CraftState.FAILED:
                self._events.emit(
                    EventType.CRAFT_FAILED,
                    {"recipe": recipe.key, "label": recipe.label, "reason": recipe.error},
                    correlation_id=cycle_id,
                )

    def _publish_status(self, duration: float, cycle_id: str) -> Status:
        pool = self._pool()
        errors, crafting, queued = summarize(self._catalog)
        status = Status(
            cycle_duration=duration,
            cpu_total=pool.total,
            cpu_free=pool.free,
            count_error=errors,
            count_crafting=crafting,
            count_queued=queued,
        )
        self._status = status
        self._report_new_faults(cycle_id)
        self._events.emit(EventType.STATUS_UPDATED, status.to_dict(), correlation_id=cycle_id)
        return status

    def _report_new_faults(self, cycle_id: str) -> None:
        current: dict[str, str] = {}
        for recipe in self._catalog:
            if recipe.fault is None:
                continue
            current[recipe.key] = recipe.fault.message
            if self._reported_faults.get(recipe.key) == recipe.fault.message:
                continue
            self._events.emit(
                EventType.RECIPE_FAULTED,
                {
                    "recipe": recipe.key,
                    "label": recipe.label,
                    "kind": recipe.fault.kind.value,
                    "message": recipe.fault.message,
                },
                correlation_id=cycle_id,
            )
        self._reported_faults = current

    @contextmanager
    def _fatal_guard(self, cycle_id: str | None) -> Iterator[None]:
        try:
            yield
        except FatalBackendError as exc:
            logger.error("fatal backend error: %s", exc.reason)
            self._events.emit(EventType.FATAL_ERROR, {"reason": exc.reason}, correlation_id=cycle_id)
            raise


__all__ = ["Reconciler", "ReconcilerSettings", "summarize"]
