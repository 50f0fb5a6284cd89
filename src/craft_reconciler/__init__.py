"""
craft-reconciler — package root

File: src/craft_reconciler/__init__.py

Purpose
- Keep a crafting network stocked: observe inventory, compare it against a
  desired-quantity catalog, and dispatch crafting jobs onto a bounded CPU pool.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
- Heavy submodules (CLI, config loader) are imported lazily by callers.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
