"""
Fire-and-forget event delivery.

``emit`` never blocks the operation that triggered it and never
raises: each handler runs as its own task on the running event loop,
and handler failures are logged and dropped.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]


class Notifier(Protocol):
    def emit(self, event: BaseModel) -> None:
        ...


class HookNotifier:
    """Dispatches events to handlers registered per event class."""

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: BaseModel) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        if not handlers:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping event %s", event.name)
            return

        for handler in handlers:
            task = loop.create_task(self._run(handler, event))
            # Keep a reference until the task finishes so it is not collected
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every in-flight handler. For shutdown and tests."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, handler: Handler, event: BaseModel) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Hook %s failed for event %s",
                getattr(handler, "__qualname__", repr(handler)),
                event.name,
            )


class NullNotifier:
    """Notifier that drops every event."""

    def emit(self, event: BaseModel) -> None:
        return None
