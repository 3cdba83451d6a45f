"""
Bounded, newest-first logs owned by the automation state.

MessageHistory  — captured/simulated messages (cap 400)
EvaluationLog   — trigger evaluation audit trail (cap 1200)

Both append in memory synchronously and mirror each record to storage
through the BackgroundWriter; the caller never waits on persistence.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Callable, Iterable

from tabwatch.automation.models import Message, MessageSource, TriggerEvaluation, new_id
from tabwatch.scheduler.schedule import to_timestamp
from tabwatch.store.writer import BackgroundWriter

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class MessageHistory:
    """
    Most-recent-first message list with a hard cap; oldest entries drop off.

    Usage:
        history = MessageHistory(capacity=400, writer=writer)
        msg = history.add("slack", title="Deploy", body="now", source="dom-slack")
    """

    def __init__(
        self,
        capacity: int = 400,
        writer: BackgroundWriter | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._items: deque[Message] = deque(maxlen=capacity)
        self._writer = writer
        self._clock = clock

    def add(
        self,
        tab_id: str,
        title: str = "",
        body: str = "",
        source: str = MessageSource.UNKNOWN,
        created_at: Any = None,
    ) -> Message:
        """Create, store and persist (fire-and-forget) a message."""
        ts = to_timestamp(created_at) if created_at is not None else None
        message = Message(
            id=new_id("msg"),
            tab_id=tab_id,
            title=title or "",
            body=body or "",
            source=source or MessageSource.UNKNOWN,
            created_at=ts if ts is not None else self._clock(),
        )
        self._items.appendleft(message)
        if self._writer is not None:
            self._writer.submit(self._writer.storage.insert_message, message)
        return message

    def load(self, messages: Iterable[Message]) -> None:
        """Replace contents with stored messages (given newest first)."""
        self._items.clear()
        self._items.extend(messages)

    def recent(self, limit: int | None = None) -> list[Message]:
        items = list(self._items)
        return items if limit is None else items[:limit]

    def get(self, message_id: str) -> Message | None:
        for message in self._items:
            if message.id == message_id:
                return message
        return None

    def __len__(self) -> int:
        return len(self._items)


class EvaluationLog:
    """Append-only trigger evaluation audit trail, queryable by trigger id."""

    def __init__(
        self,
        capacity: int = 1200,
        writer: BackgroundWriter | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._items: deque[TriggerEvaluation] = deque(maxlen=capacity)
        self._writer = writer
        self._clock = clock

    def record(
        self, trigger_id: str, message_id: str, matched: bool, reason: str
    ) -> TriggerEvaluation:
        evaluation = TriggerEvaluation(
            id=new_id("eval"),
            trigger_id=trigger_id,
            message_id=message_id,
            matched=matched,
            reason=reason,
            created_at=self._clock(),
        )
        self._items.appendleft(evaluation)
        if self._writer is not None:
            self._writer.submit(self._writer.storage.insert_evaluation, evaluation)
        return evaluation

    def load(self, evaluations: Iterable[TriggerEvaluation]) -> None:
        self._items.clear()
        self._items.extend(evaluations)

    def for_trigger(self, trigger_id: str, limit: int | None = None) -> list[TriggerEvaluation]:
        """Newest first."""
        rows = [e for e in self._items if e.trigger_id == trigger_id]
        return rows if limit is None else rows[:limit]

    def recent(self, limit: int | None = None) -> list[TriggerEvaluation]:
        items = list(self._items)
        return items if limit is None else items[:limit]

    def __len__(self) -> int:
        return len(self._items)
