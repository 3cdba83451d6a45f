"""
Storage provider interface.

Durable mirror of the automation state. In-memory state stays
authoritative for the running process; storage is written in the
background and bulk-loaded once at startup.

Every write is keyed by the record's identifier, so a repeated or
retried write is harmless (upsert for mutable records, insert-or-ignore
for append-only ones).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from tabwatch.automation.models import (
    Action,
    AutomationEvent,
    Message,
    Trigger,
    TriggerEvaluation,
)


@dataclass
class StoredState:
    """Everything loaded at startup. Log lists are newest first."""

    actions: list[Action] = field(default_factory=list)
    triggers: list[Trigger] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    evaluations: list[TriggerEvaluation] = field(default_factory=list)
    events: list[AutomationEvent] = field(default_factory=list)


class StorageProvider(ABC):
    """
    Abstract base class for storage backends.

    Implementations:
        SQLiteStorage   — file-based, default
        InMemoryStorage — for testing
    """

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open handles)."""

    @abstractmethod
    async def upsert_action(self, action: Action) -> None: ...

    @abstractmethod
    async def upsert_trigger(self, trigger: Trigger) -> None: ...

    @abstractmethod
    async def insert_message(self, message: Message) -> None: ...

    @abstractmethod
    async def insert_evaluation(self, evaluation: TriggerEvaluation) -> None: ...

    @abstractmethod
    async def insert_event(self, event: AutomationEvent) -> None: ...

    @abstractmethod
    async def load_state(
        self,
        max_messages: int = 400,
        max_evaluations: int = 1200,
        max_events: int = 400,
    ) -> StoredState:
        """Bulk-load everything, clamping each log to its cap."""
        ...

    @abstractmethod
    async def get_setting(self, key: str) -> str | None:
        """Get a setting value by key. Returns None if not found."""
        ...

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None:
        """Set a setting value. Overwrites if exists."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the storage backend."""
        ...
