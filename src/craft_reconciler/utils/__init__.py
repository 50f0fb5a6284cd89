"""Utility exports for filesystem and concurrency helpers."""

from craft_reconciler.utils.concurrency import CancellationToken, wait_for_signal
from craft_reconciler.utils.fs import atomic_write

__all__ = ["CancellationToken", "atomic_write", "wait_for_signal"]
