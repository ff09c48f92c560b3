import asyncio
from collections import defaultdict
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from collabflow.logging import get_logger

type Handler[T] = Callable[[T], Coroutine[Any, Any, None]]

_logger = get_logger(__name__)


class Broadcaster(Protocol):
    async def publish(self, event: Any) -> None: ...


class Channel:
    """In-process pub/sub bus for workflow events.

    - subscribe(EventType, handler) registers an async handler.
    - subscribe_all(handler) receives every event regardless of type.
    - publish(event) awaits all matching handlers concurrently.
      Errors are logged, never propagated.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._catch_all: list[Handler] = []

    def subscribe[T](self, event_type: type[T], handler: Handler[T]) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe[T](self, event_type: type[T], handler: Handler[T]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscribe_all(self, handler: Handler[Any]) -> None:
        self._catch_all.append(handler)

    def unsubscribe_all(self, handler: Handler[Any]) -> None:
        if handler in self._catch_all:
            self._catch_all.remove(handler)

    async def publish[T](self, event: T) -> None:
        handlers = [*self._handlers.get(type(event), []), *self._catch_all]
        if handlers:
            await asyncio.gather(*(self._run(h, event) for h in handlers))

    async def _run[T](self, handler: Handler[T], event: T) -> None:
        try:
            await handler(event)
        except Exception:
            _logger.exception(
                "Event handler %s failed for %s",
                getattr(handler, "__qualname__", repr(handler)),
                type(event).__name__,
            )
