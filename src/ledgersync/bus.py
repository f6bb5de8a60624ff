"""In-process typed publish/subscribe bus.

Handlers run in subscription order. A handler may be a plain callable or a
coroutine function; awaitable results are awaited before the next handler
runs, so a publisher that awaits :meth:`EventBus.publish` knows every
interested consumer has reacted. A failing handler is logged and never stops
delivery to the remaining handlers.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ledgersync.state.events import BusEvent, E, Topic

_logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """Topic-addressed event bus decoupled from any UI runtime."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, topic: Topic[E], handler: Callable[[E], Awaitable[None] | None]) -> Callable[[], None]:
        """Register *handler* for *topic*; returns a callable that unsubscribes it."""
        self._handlers.setdefault(topic.name, []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(topic, handler)

        return _unsubscribe

    def unsubscribe(self, topic: Topic[Any], handler: Handler) -> None:
        handlers = self._handlers.get(topic.name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            self._handlers.pop(topic.name, None)

    def handler_count(self, topic: Topic[Any]) -> int:
        return len(self._handlers.get(topic.name, ()))

    async def publish(self, topic: Topic[E], payload: E) -> None:
        """Deliver *payload* to every handler subscribed to *topic*."""
        if not isinstance(payload, topic.payload_type):
            raise TypeError(
                f"Topic {topic.name!r} carries {topic.payload_type.__name__}, got {type(payload).__name__}"
            )
        handlers = list(self._handlers.get(topic.name, ()))
        _logger.debug("Publishing %s to %d handler(s)", topic.name, len(handlers))
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception("Error in %s event handler", topic.name)


__all__ = ["BusEvent", "EventBus", "Handler"]
