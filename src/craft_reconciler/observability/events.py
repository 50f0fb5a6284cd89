"""In-process event bus for reconciler lifecycle events, with replay."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

from craft_reconciler.domain import EventType, ReconcilerEvent
from craft_reconciler.domain.ids import generate_event_id

Subscriber = Callable[[ReconcilerEvent], object]

_DEFAULT_ERROR_BUFFER: Final[int] = 256


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting the publisher."""

    event_id: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    event_type: EventType | None
    callback: Subscriber


class EventBus:
    """Event bus with sync+async subscribers and a bounded replay buffer.

    A failing subscriber never propagates into the reconciler: the failure is
    recorded as a :class:`DispatchError` and returned to the publisher.
    """

    def __init__(self, *, buffer_size: int = 512) -> None:
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int):
            raise ValueError(f"buffer_size must be an integer, got {type(buffer_size).__name__}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self._buffer = deque[ReconcilerEvent](maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription] = {}
        self._pending_async_tasks: set[asyncio.Task[None]] = set()
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1
        self._lock = threading.RLock()

    def subscribe(self, event_type: str | EventType | None, callback: Subscriber) -> int:
        """Subscribe to one event type, or to every event when ``event_type`` is ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = None if event_type is None else _as_event_type(event_type)

        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(
                token=token, event_type=normalized, callback=callback
            )
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def publish(self, event: ReconcilerEvent) -> tuple[DispatchError, ...]:
        """Publish from synchronous code; async subscribers are scheduled on the running loop."""

        subscriptions = self._record(event)
        running_loop = _current_running_loop()
        errors: list[DispatchError] = []

        for subscription in subscriptions:
            if not _matches(subscription, event):
                continue
            try:
                result = subscription.callback(event)
                if inspect.iscoroutine(result):
                    self._schedule(result, running_loop, subscription.callback, event)
            except Exception as exc:  # noqa: BLE001 - subscriber isolation.
                errors.append(_dispatch_error(event, subscription.callback, exc))

        self._remember(errors)
        return tuple(errors)

    async def publish_async(self, event: ReconcilerEvent) -> tuple[DispatchError, ...]:
        """Publish from async code, awaiting async subscribers in subscription order."""

        subscriptions = self._record(event)
        errors: list[DispatchError] = []

        for subscription in subscriptions:
            if not _matches(subscription, event):
                continue
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - subscriber isolation.
                errors.append(_dispatch_error(event, subscription.callback, exc))

        self._remember(errors)
        return tuple(errors)

    def emit(
        self,
        event_type: str | EventType,
        payload: Mapping[str, object],
        *,
        correlation_id: str | None = None,
    ) -> ReconcilerEvent:
        event = _build_event(event_type, payload, correlation_id)
        self.publish(event)
        return event

    async def emit_async(
        self,
        event_type: str | EventType,
        payload: Mapping[str, object],
        *,
        correlation_id: str | None = None,
    ) -> ReconcilerEvent:
        event = _build_event(event_type, payload, correlation_id)
        await self.publish_async(event)
        return event

    async def drain_async(self) -> tuple[DispatchError, ...]:
        """Await async subscriber tasks created by synchronous ``publish``."""

        with self._lock:
            pending = tuple(self._pending_async_tasks)
            self._pending_async_tasks.clear()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.dispatch_errors()

    def replay(
        self,
        *,
        since: datetime | None = None,
        event_type: str | EventType | None = None,
        limit: int | None = None,
    ) -> tuple[ReconcilerEvent, ...]:
        """Return buffered events in publish order."""

        if since is not None and (since.tzinfo is None or since.utcoffset() is None):
            raise ValueError("since datetime must be timezone-aware")
        type_filter = None if event_type is None else _as_event_type(event_type)

        with self._lock:
            events = tuple(self._buffer)

        filtered = [
            event
            for event in events
            if (since is None or event.timestamp > since)
            and (type_filter is None or event.event_type is type_filter)
        ]
        if limit is not None:
            if limit <= 0:
                return ()
            filtered = filtered[-limit:]
        return tuple(filtered)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)

    def _record(self, event: ReconcilerEvent) -> tuple[_Subscription, ...]:
        if not isinstance(event, ReconcilerEvent):
            raise ValueError(f"event must be ReconcilerEvent, got {type(event).__name__}")
        with self._lock:
            self._buffer.append(event)
            return tuple(self._subscriptions.values())

    def _remember(self, errors: list[DispatchError]) -> None:
        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)

    def _schedule(
        self,
        coroutine: Coroutine[Any, Any, object],
        loop: asyncio.AbstractEventLoop | None,
        callback: Subscriber,
        event: ReconcilerEvent,
    ) -> None:
        if loop is None:
            asyncio.run(coroutine)
            return

        task = loop.create_task(coroutine)
        with self._lock:
            self._pending_async_tasks.add(task)

        def _done(done: asyncio.Task[None]) -> None:
            with self._lock:
                self._pending_async_tasks.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if isinstance(exc, Exception):
                self._remember([_dispatch_error(event, callback, exc)])

        task.add_done_callback(_done)


def _build_event(
    event_type: str | EventType,
    payload: Mapping[str, object],
    correlation_id: str | None,
) -> ReconcilerEvent:
    return ReconcilerEvent(
        event_id=generate_event_id(),
        event_type=_as_event_type(event_type),
        timestamp=datetime.now(tz=UTC),
        correlation_id=correlation_id,
        payload=dict(payload),
    )


def _as_event_type(value: str | EventType) -> EventType:
    if isinstance(value, EventType):
        return value
    try:
        return EventType(value)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in EventType)
        raise ValueError(f"invalid event_type {value!r}; allowed: {allowed}") from exc


def _matches(subscription: _Subscription, event: ReconcilerEvent) -> bool:
    return subscription.event_type is None or subscription.event_type is event.event_type


def _current_running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _dispatch_error(event: ReconcilerEvent, callback: object, exc: Exception) -> DispatchError:
    name = getattr(callback, "__name__", None)
    return DispatchError(
        event_id=event.event_id,
        target=name if isinstance(name, str) and name else type(callback).__name__,
        error_type=type(exc).__name__,
        message=str(exc),
    )


__all__ = ["DispatchError", "EventBus", "Subscriber"]
