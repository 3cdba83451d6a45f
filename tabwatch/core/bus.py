"""
Event bus — how pipeline decisions and tab state reach observers.

Combines two patterns:
1. Observer (pub/sub): components subscribe to event types
2. Middleware chain: events pass through middleware before delivery

The trigger pipeline is synchronous, so it never awaits delivery: it
publishes with emit_nowait() and observers receive events on the next
turn of the loop. A slow or failing subscriber never blocks or breaks
the producer.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from typing import Awaitable, Callable

from tabwatch.core.events import Event

logger = logging.getLogger(__name__)

# Type aliases
EventHandler = Callable[[Event], Awaitable[None]]
MiddlewareNext = Callable[[Event], Awaitable[Event]]
MiddlewareFunc = Callable[[Event, MiddlewareNext], Awaitable[Event]]


class EventBus:
    """
    Publish/subscribe event bus with middleware pipeline.

    Usage:
        bus = EventBus()

        bus.on("automation:action-planned", my_handler)
        bus.on("automation:*", my_wildcard_handler)
        bus.on("*", my_catch_all_handler)

        bus.use(event_logger.middleware)

        await bus.emit(Event(type="tab:state", data={...}))
        bus.emit_nowait(Event(type="automation:trigger-matched", data={...}))
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._middleware: list[MiddlewareFunc] = []
        self._pending: set[asyncio.Task] = set()

    # ━━━ Subscription ━━━

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to an event type. Supports wildcards: 'automation:*', '*'."""
        self._subscribers.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._subscribers:
            self._subscribers[event_type] = [
                h for h in self._subscribers[event_type] if h is not handler
            ]
            if not self._subscribers[event_type]:
                del self._subscribers[event_type]

    # ━━━ Middleware ━━━

    def use(self, middleware: MiddlewareFunc) -> None:
        """
        Add middleware to the processing pipeline.

        Middleware signature:
            async def my_middleware(event: Event, next: MiddlewareNext) -> Event:
                result = await next(event)
                return result
        """
        self._middleware.append(middleware)

    # ━━━ Emission ━━━

    async def emit(self, event: Event) -> Event:
        """
        Emit an event through the middleware chain, then to subscribers.

        Middleware executes in registration order.
        Subscribers execute concurrently.
        """
        chain = self._build_chain()
        return await chain(event)

    def emit_nowait(self, event: Event) -> None:
        """
        Schedule delivery without waiting for it.

        Safe to call from synchronous code. Without a running loop the
        event is dropped (logged at DEBUG) — delivery is best-effort.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No event loop for nowait emit: {event.type}")
            return
        task = loop.create_task(self._emit_safe(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every nowait delivery scheduled so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ━━━ Internals ━━━

    def _build_chain(self) -> MiddlewareNext:
        """Build the middleware chain ending with subscriber dispatch."""

        async def dispatch(event: Event) -> Event:
            handlers = self._find_handlers(event.type)
            if handlers:
                results = await asyncio.gather(
                    *(h(event) for h in handlers),
                    return_exceptions=True,
                )
                for result in results:
                    if isinstance(result, Exception):
                        logger.error(
                            f"Subscriber error for {event.type}: {result}",
                            exc_info=result,
                        )
            return event

        handler: MiddlewareNext = dispatch
        for mw in reversed(self._middleware):
            next_handler = handler

            async def make_handler(
                event: Event,
                *,
                _mw: MiddlewareFunc = mw,
                _next: MiddlewareNext = next_handler,
            ) -> Event:
                return await _mw(event, _next)

            handler = make_handler

        return handler

    def _find_handlers(self, event_type: str) -> list[EventHandler]:
        """Find all handlers matching an event type, including wildcards."""
        handlers: list[EventHandler] = []
        for pattern, subs in self._subscribers.items():
            if pattern == event_type or pattern == "*":
                handlers.extend(subs)
            elif "*" in pattern and fnmatch.fnmatch(event_type, pattern):
                handlers.extend(subs)
        return handlers

    async def _emit_safe(self, event: Event) -> None:
        try:
            await self.emit(event)
        except Exception as e:
            logger.error(f"Error in nowait emit for {event.type}: {e}")

    @property
    def subscriber_count(self) -> int:
        """Total number of subscriptions (for debugging)."""
        return sum(len(subs) for subs in self._subscribers.values())
