"""
craft-reconciler — crafting network backend interface

File: src/craft_reconciler/backend/base.py

Purpose
- Protocols implemented by crafting network drivers: inventory snapshots,
  CPU pool snapshots, pattern resolution, job submission, job handles.
- Error taxonomy for backend failures and the fatal/recoverable split.
- Backend discovery from a ``module:callable`` factory path.

Functional requirements
- All backend calls are synchronous and issued from the reconciler's single
  event-loop task; drivers need no locking.
- A driver signals failure by raising ``BackendError``; the reconciler decides
  whether that failure is fatal or recorded on a recipe.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Protocol, TypeAlias, runtime_checkable

if TYPE_CHECKING:
    from craft_reconciler.domain.identity import ItemIdentity
    from craft_reconciler.domain.models import Cpu, NetworkItem

logger = logging.getLogger(__name__)

ItemRecord: TypeAlias = "NetworkItem | Mapping[str, object]"
CpuRecord: TypeAlias = "Cpu | Mapping[str, object]"


class BackendError(RuntimeError):
    """Raised by drivers when a call against the crafting network fails."""

    def __init__(self, detail: str, *, operation: str = "backend") -> None:
        self.operation = operation
        self.detail = detail.strip() or "unknown error"
        super().__init__(f"{self.operation}: {self.detail}")


class FatalBackendError(RuntimeError):
    """Unrecoverable condition: the current cycle and the process must stop.

    Raised when the inventory snapshot cannot be read, when a completion
    check fails for a reason other than cancellation, when the catalog
    cannot be saved, or when no usable backend can be built. Continuing
    would mean matching and dispatching against inconsistent data.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


@runtime_checkable
class JobHandle(Protocol):
    """Opaque reference to an in-flight crafting request."""

    def is_canceled(self) -> bool:
        """Return whether the job was canceled. Raise ``BackendError`` with the reason on error."""

    def is_done(self) -> bool:
        """Return whether the job finished successfully."""


@runtime_checkable
class Pattern(Protocol):
    """Descriptor of how to produce an item; submits jobs."""

    def request(self, amount: int) -> JobHandle:
        """Submit a crafting job for ``amount`` units."""


@runtime_checkable
class InventoryProvider(Protocol):
    def items_in_network(self) -> Sequence[ItemRecord]:
        """Return every item currently stored in the network."""


@runtime_checkable
class CpuPoolProvider(Protocol):
    def cpus(self) -> Sequence[CpuRecord]:
        """Return the crafting CPU pool snapshot."""


@runtime_checkable
class PatternResolver(Protocol):
    def patterns_for(self, identity: ItemIdentity) -> Sequence[Pattern]:
        """Return crafting patterns whose output matches ``identity``."""


@runtime_checkable
class CraftingNetwork(InventoryProvider, CpuPoolProvider, PatternResolver, Protocol):
    """A single driver object exposing every backend capability."""


NetworkFactory: TypeAlias = Callable[..., CraftingNetwork]


def load_backend(
    factory_path: str,
    *,
    options: Mapping[str, object] | None = None,
) -> CraftingNetwork:
    """Build a network from ``module:callable`` and probe it with ``cpus()``.

    Any failure (import, construction, probe) is fatal: there is nothing to
    reconcile against without a working network.
    """

    factory = _resolve_factory(factory_path)
    try:
        network = factory(**dict(options or {}))
    except Exception as exc:  # noqa: BLE001 - driver construction boundary.
        raise FatalBackendError(
            f"no usable crafting network: {factory_path} failed to build: {exc}"
        ) from exc

    if not isinstance(network, CraftingNetwork):
        raise FatalBackendError(
            f"no usable crafting network: {factory_path} returned "
            f"{type(network).__name__}, which does not implement CraftingNetwork"
        )

    try:
        cpus = network.cpus()
    except Exception as exc:  # noqa: BLE001 - probe failure means unusable backend.
        raise FatalBackendError(
            f"no usable crafting network: {factory_path} failed the CPU probe: {exc}"
        ) from exc

    logger.info(
        "using crafting network %s",
        factory_path,
        extra={"backend": factory_path, "cpu_total": len(cpus)},
    )
    return network


def _resolve_factory(factory_path: str) -> NetworkFactory:
    module_name, sep, attr_name = factory_path.partition(":")
    if not sep or not module_name.strip() or not attr_name.strip():
        raise FatalBackendError(
            f"no usable crafting network: factory path must look like 'module:callable', "
            f"got {factory_path!r}"
        )
    try:
        module = importlib.import_module(module_name.strip())
    except ImportError as exc:
        raise FatalBackendError(
            f"no usable crafting network: cannot import {module_name!r}: {exc}"
        ) from exc

    factory = getattr(module, attr_name.strip(), None)
    if not callable(factory):
        raise FatalBackendError(
            f"no usable crafting network: {factory_path} is not a callable factory"
        )
    return factory


__all__ = [
    "BackendError",
    "CpuPoolProvider",
    "CpuRecord",
    "CraftingNetwork",
    "FatalBackendError",
    "InventoryProvider",
    "ItemRecord",
    "JobHandle",
    "NetworkFactory",
    "Pattern",
    "PatternResolver",
    "load_backend",
]
