"""In-process publish/subscribe bus for manager events.

Handlers MUST be synchronous. The manager publishes from inside connection
callbacks, so a handler that needs async work schedules it with
`asyncio.create_task()` instead of awaiting it.
"""

import asyncio
from typing import Callable, Type, TypeVar

from mcpfile.logger import get_logger

from .types import Event

logger = get_logger("events.bus")

T = TypeVar("T", bound=Event)

EventHandler = Callable[[Event], None]


class EventBus:
    """Event bus for publishing and subscribing to manager events.

    Handlers run synchronously, in subscription order, inside `publish()`.
    A failing handler is logged and does not stop the remaining handlers.

    Not thread-safe: every call is expected on the same event loop thread.
    """

    def __init__(self):
        self._handlers: dict[Type[Event], list[EventHandler]] = {}

    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        """
        Subscribe a handler to one event type.

        Args:
            event_type: The event class to listen for (e.g. ServerStatesChanged)
            handler: Synchronous callable receiving the event instance

        Raises:
            TypeError: If handler is a coroutine function
        """
        if asyncio.iscoroutinefunction(handler):
            raise TypeError(
                f"Event handlers must be synchronous functions. "
                f"Handler {getattr(handler, '__name__', handler)!r} is a coroutine function; "
                f"schedule async work with asyncio.create_task() instead."
            )

        handlers = self._handlers.setdefault(event_type, [])
        if handler in handlers:
            logger.debug(f"Handler already subscribed for {event_type.__name__}, skipping")
            return
        handlers.append(handler)  # type: ignore[arg-type]
        logger.debug(f"Subscribed handler for {event_type.__name__}")

    def unsubscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)  # type: ignore[arg-type]
            logger.debug(f"Unsubscribed handler for {event_type.__name__}")
        except ValueError:
            logger.debug(f"Handler not found in subscriptions for {event_type.__name__}")

    def publish(self, event: Event) -> None:
        """Deliver an event to every handler subscribed to its exact type."""
        event_type = type(event)
        handlers = list(self._handlers.get(event_type, []))

        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.opt(exception=e).error(f"Error in event handler for {event_type.__name__}: {e}")

    def clear(self) -> None:
        """Drop every subscription."""
        self._handlers.clear()
        logger.debug("Event bus cleared")

    def has_subscribers(self, event_type: Type[Event]) -> bool:
        """Return True if at least one handler listens for event_type."""
        return bool(self._handlers.get(event_type))
