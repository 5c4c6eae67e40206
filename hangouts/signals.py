"""Typed signals owned by a client or channel instance.

Each signal keeps its own listener list, so subscriptions live exactly as long
as the object that owns the signal (or until cancelled).
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Generic, List, TypeVar

from shared.log import get_logger

logger = get_logger(__name__)

# Listener signature; may be a plain function or a coroutine function
Handler = Callable[..., Any]
H = TypeVar("H", bound=Handler)


class Subscription:
    """Handle returned by :meth:`Signal.subscribe`."""

    def __init__(self, signal: "Signal", handler: Handler):
        self._signal = signal
        self.handler = handler

    @property
    def active(self) -> bool:
        return self.handler in self._signal._handlers

    def cancel(self) -> None:
        self._signal.unsubscribe(self.handler)


class Signal(Generic[H]):
    """
    A named event with explicit subscribers.

    Usage:
        on_event: Signal[Callable[[str, Event], Awaitable[None]]] = Signal("on_event")
        sub = on_event.subscribe(handler)
        await on_event.emit(conversation_id, event)
        sub.cancel()
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Handler] = []

    def subscribe(self, handler: H) -> Subscription:
        if handler not in self._handlers:
            self._handlers.append(handler)
            logger.debug("Added subscriber for %s", self.name)
        return Subscription(self, handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)
            logger.debug("Removed subscriber for %s", self.name)

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    async def emit(self, *args: Any) -> None:
        """Call every subscriber in subscription order.

        A subscriber that raises is logged and the rest still run.
        """
        for handler in list(self._handlers):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Error in %s handler %r: %s", self.name, handler, e, exc_info=True)
