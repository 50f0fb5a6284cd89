"""
craft-reconciler — domain layer

File: src/craft_reconciler/domain/__init__.py

Purpose
- Domain types shared across planes: item identities, recipes, network
  snapshots, status aggregates, and events.

Rules
- Keep the domain layer free of IO side effects.
"""

from craft_reconciler.domain.events import EventType, ReconcilerEvent
from craft_reconciler.domain.identity import ItemIdentity, contains, identity_key
from craft_reconciler.domain.models import (
    Cpu,
    CraftState,
    FaultKind,
    NetworkItem,
    Recipe,
    RecipeFault,
    Status,
)

__all__ = [
    "Cpu",
    "CraftState",
    "EventType",
    "FaultKind",
    "ItemIdentity",
    "NetworkItem",
    "ReconcilerEvent",
    "Recipe",
    "RecipeFault",
    "Status",
    "contains",
    "identity_key",
]
