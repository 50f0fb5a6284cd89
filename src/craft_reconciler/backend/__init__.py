"""Crafting network backend protocols, discovery, and the simulated network."""

from craft_reconciler.backend.base import (
    BackendError,
    CpuPoolProvider,
    CraftingNetwork,
    FatalBackendError,
    InventoryProvider,
    JobHandle,
    Pattern,
    PatternResolver,
    load_backend,
)

__all__ = [
    "BackendError",
    "CpuPoolProvider",
    "CraftingNetwork",
    "FatalBackendError",
    "InventoryProvider",
    "JobHandle",
    "Pattern",
    "PatternResolver",
    "load_backend",
]
