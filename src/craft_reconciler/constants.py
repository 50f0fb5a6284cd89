"""Stable constants shared across reconciler planes."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
CATALOG_SCHEMA_VERSION: Final[int] = 1

# Default file names (relative to the config file location unless overridden).
DEFAULT_CATALOG_FILE: Final[str] = "reconciler-catalog.yaml"
DEFAULT_LOG_DIR: Final[str] = "logs/"

# Scheduling defaults. Negative allowed_cpus keeps that many workers free.
DEFAULT_ALLOWED_CPUS: Final[float] = -2
DEFAULT_MAX_BATCH: Final[int] = 256
DEFAULT_FULL_CHECK_INTERVAL_S: Final[float] = 50.0
DEFAULT_CRAFTING_CHECK_INTERVAL_S: Final[float] = 10.0

DEFAULT_BACKEND_FACTORY: Final[str] = "craft_reconciler.backend.simulated:demo_network"

# Separator used in identity keys: ``name:damage[:label]``.
IDENTITY_KEY_SEPARATOR: Final[str] = ":"

__all__ = [
    "CATALOG_SCHEMA_VERSION",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ALLOWED_CPUS",
    "DEFAULT_BACKEND_FACTORY",
    "DEFAULT_CATALOG_FILE",
    "DEFAULT_CRAFTING_CHECK_INTERVAL_S",
    "DEFAULT_FULL_CHECK_INTERVAL_S",
    "DEFAULT_LOG_DIR",
    "DEFAULT_MAX_BATCH",
    "IDENTITY_KEY_SEPARATOR",
]
