"""
In-memory storage backend — for testing.

Dict-based storage. Data lost when process exits.
"""

from __future__ import annotations

from tabwatch.automation.models import (
    Action,
    AutomationEvent,
    Message,
    Trigger,
    TriggerEvaluation,
)
from tabwatch.store.base import StorageProvider, StoredState


class InMemoryStorage(StorageProvider):
    """
    In-memory store for testing.

    Usage:
        storage = InMemoryStorage()
        await storage.upsert_action(action)
        state = await storage.load_state()
    """

    def __init__(self) -> None:
        self.actions: dict[str, Action] = {}
        self.triggers: dict[str, Trigger] = {}
        self.messages: dict[str, Message] = {}
        self.evaluations: dict[str, TriggerEvaluation] = {}
        self.events: dict[str, AutomationEvent] = {}
        self.settings: dict[str, str] = {}
        self.closed = False

    async def upsert_action(self, action: Action) -> None:
        self.actions[action.id] = Action.from_dict(action.to_dict())

    async def upsert_trigger(self, trigger: Trigger) -> None:
        self.triggers[trigger.id] = Trigger.from_dict(trigger.to_dict())

    async def insert_message(self, message: Message) -> None:
        self.messages.setdefault(message.id, message)

    async def insert_evaluation(self, evaluation: TriggerEvaluation) -> None:
        self.evaluations.setdefault(evaluation.id, evaluation)

    async def insert_event(self, event: AutomationEvent) -> None:
        self.events.setdefault(event.id, event)

    async def load_state(
        self,
        max_messages: int = 400,
        max_evaluations: int = 1200,
        max_events: int = 400,
    ) -> StoredState:
        # dicts keep insertion order; newest-first means reversed
        return StoredState(
            actions=sorted(self.actions.values(), key=lambda a: a.created_at),
            triggers=sorted(self.triggers.values(), key=lambda t: t.created_at),
            messages=list(reversed(self.messages.values()))[:max_messages],
            evaluations=list(reversed(self.evaluations.values()))[:max_evaluations],
            events=list(reversed(self.events.values()))[:max_events],
        )

    async def get_setting(self, key: str) -> str | None:
        return self.settings.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.settings[key] = value

    async def close(self) -> None:
        self.closed = True
