"""Event bus - EventBusProtocol and InMemoryEventBus."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol

from core.infrastructure.logging import get_logger

from .events import ALL_EVENTS, Event

EventHandler = Callable[[Event], Awaitable[None] | None]


class EventBusProtocol(Protocol):
    """Protocol for event bus implementations."""

    async def publish(self, event: Event) -> None:
        """Publish an event.

        Args:
            event: Event to publish
        """
        ...

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event name.

        Args:
            event_name: Event name to subscribe to ("*" for every event)
            handler: Async or sync handler function
        """
        ...


class InMemoryEventBus(EventBusProtocol):
    """In-memory event bus implementation.

    Handlers are a pure side channel: a handler that raises or overruns its
    timeout is logged and skipped, never affecting the publisher.
    """

    def __init__(self, handler_timeout: float | None = None) -> None:
        """Initialize in-memory event bus.

        Args:
            handler_timeout: Optional per-handler timeout in seconds
        """
        self._handlers: dict[str, list[EventHandler]] = {}
        self._handler_timeout = handler_timeout
        self._logger = get_logger("orchestration.event_bus")

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event name.

        Args:
            event_name: Event name to subscribe to ("*" for every event)
            handler: Async or sync handler function
        """
        if event_name not in self._handlers:
            self._handlers[event_name] = []
        self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        handlers = self._handlers.get(event_name, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribed handlers.

        Args:
            event: Event to publish
        """
        handlers = [*self._handlers.get(event.name, []), *self._handlers.get(ALL_EVENTS, [])]
        if not handlers:
            return

        self._logger.debug(
            "publishing_event event_name=%s execution_id=%s handler_count=%d",
            event.name,
            event.metadata.execution_id,
            len(handlers),
        )

        for handler in handlers:
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    if self._handler_timeout is not None:
                        await asyncio.wait_for(outcome, self._handler_timeout)
                    else:
                        await outcome
            except Exception as exc:
                self._logger.error(
                    "handler_error event_name=%s handler=%s error=%s",
                    event.name,
                    getattr(handler, "__qualname__", repr(handler)),
                    exc,
                    exc_info=True,
                )
