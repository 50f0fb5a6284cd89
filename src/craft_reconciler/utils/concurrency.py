"""Async primitives for the reconciler's serving loop."""

from __future__ import annotations

import asyncio
from contextlib import suppress


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def wait_for_signal(event: asyncio.Event, timeout_seconds: float) -> bool:
    """Wait until ``event`` is set or the timeout elapses; clear it and report which."""

    if timeout_seconds <= 0:
        fired = event.is_set()
    else:
        with suppress(TimeoutError):
            await asyncio.wait_for(event.wait(), timeout=timeout_seconds)
        fired = event.is_set()
    event.clear()
    return fired


__all__ = ["CancellationToken", "wait_for_signal"]
