"""
EventLog — bounded record of pipeline decisions.

Every push() is, in order:
1. prepended to the in-memory log (cap 400, oldest dropped)
2. broadcast on the event bus as "automation:<kind>" (never awaited)
3. persisted through the BackgroundWriter (never awaited)

recent() returns newest first; in_order() returns insertion order.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Callable, Iterable

from tabwatch.automation.models import AutomationEvent
from tabwatch.core.bus import EventBus
from tabwatch.core.events import Event, EventType
from tabwatch.store.writer import BackgroundWriter

logger = logging.getLogger(__name__)


class EventLog:
    def __init__(
        self,
        capacity: int = 400,
        bus: EventBus | None = None,
        writer: BackgroundWriter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._items: deque[AutomationEvent] = deque(maxlen=capacity)
        self._bus = bus
        self._writer = writer
        self._clock = clock

    def push(self, kind: str, **payload: Any) -> AutomationEvent:
        event = AutomationEvent(kind=kind, payload=payload, created_at=self._clock())
        self._items.appendleft(event)
        logger.debug(f"[{kind}] {payload}")
        if self._bus is not None:
            self._bus.emit_nowait(
                Event(
                    type=EventType.for_automation(kind),
                    data=event.to_dict(),
                    source="pipeline",
                )
            )
        if self._writer is not None:
            self._writer.submit(self._writer.storage.insert_event, event)
        return event

    def load(self, events: Iterable[AutomationEvent]) -> None:
        """Replace contents with stored events (given newest first)."""
        self._items.clear()
        self._items.extend(events)

    def recent(self, limit: int | None = None) -> list[AutomationEvent]:
        items = list(self._items)
        return items if limit is None else items[:limit]

    def in_order(self) -> list[AutomationEvent]:
        return list(reversed(self._items))

    def __len__(self) -> int:
        return len(self._items)
