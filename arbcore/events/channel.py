"""In-process publish/subscribe channel for engine events.

Subscribers register per ``EventKind`` or for every event. Handlers may be
plain callables or coroutine functions; coroutine handlers are scheduled on
the running loop so ``publish`` never suspends the publisher. A failing
handler is logged and does not affect the publisher or other handlers.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from arbcore.core.logging import get_logger
from arbcore.models.events import Event, EventKind

logger = get_logger(__name__)

Handler = Callable[[Event], Awaitable[None] | None]


async def _await(awaitable: Awaitable[None]) -> None:
    await awaitable


class EventChannel:
    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[Handler]] = defaultdict(list)
        self._wildcard: list[Handler] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for one kind. Returns an unsubscribe callable."""
        self._handlers[kind].append(handler)
        return lambda: self.unsubscribe(kind, handler)

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for every event kind."""
        self._wildcard.append(handler)
        return lambda: self.unsubscribe(None, handler)

    def unsubscribe(self, kind: EventKind | None, handler: Handler) -> None:
        handlers = self._wildcard if kind is None else self._handlers.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, kind: EventKind | None = None) -> int:
        if kind is None:
            return len(self._wildcard)
        return len(self._handlers.get(kind, []))

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to kind subscribers first, then wildcard ones."""
        for handler in [*self._handlers.get(event.kind, []), *self._wildcard]:
            self._dispatch(handler, event)

    def emit(self, kind: EventKind, order_id: str | None = None, **data: Any) -> Event:
        event = Event(kind=kind, order_id=order_id, data=data)
        self.publish(event)
        return event

    async def drain(self) -> None:
        """Wait for coroutine handlers scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _dispatch(self, handler: Handler, event: Event) -> None:
        try:
            result = handler(event)
        except Exception:
            logger.exception("event_channel.handler_failed", kind=event.kind.value)
            return
        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                if inspect.iscoroutine(result):
                    result.close()
                logger.error("event_channel.no_running_loop", kind=event.kind.value)
                return
            task = loop.create_task(_await(result))
            self._pending.add(task)
            task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "event_channel.async_handler_failed",
                error=str(task.exception()),
            )
