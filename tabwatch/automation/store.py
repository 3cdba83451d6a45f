"""
RuleStore — the in-memory trigger and action maps.

Owned by the service and handed to the pipeline by reference; nothing
here is module-level state. Maps keep insertion order, which is also the
order triggers are evaluated in. Mutations are mirrored to storage via
the BackgroundWriter.

Actions and triggers are never deleted — only created or toggled.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from tabwatch.automation.models import Action, Trigger
from tabwatch.store.writer import BackgroundWriter

logger = logging.getLogger(__name__)


class RuleStore:
    def __init__(
        self,
        writer: BackgroundWriter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._actions: dict[str, Action] = {}
        self._triggers: dict[str, Trigger] = {}
        self._writer = writer
        self._clock = clock

    # ── Actions ───────────────────────────────────────────────────────────────

    def add_action(self, action: Action) -> Action:
        self._actions[action.id] = action
        self._persist_action(action)
        logger.debug(f"Action stored: {action.name!r} (id={action.id})")
        return action

    def get_action(self, action_id: str) -> Action | None:
        return self._actions.get(action_id)

    def has_action(self, action_id: str) -> bool:
        return action_id in self._actions

    def set_action_enabled(self, action_id: str, enabled: bool) -> bool:
        action = self._actions.get(action_id)
        if action is None:
            return False
        action.enabled = bool(enabled)
        action.updated_at = self._clock()
        self._persist_action(action)
        return True

    def list_actions(self) -> list[Action]:
        """Newest first."""
        return sorted(self._actions.values(), key=lambda a: a.created_at, reverse=True)

    # ── Triggers ──────────────────────────────────────────────────────────────

    def add_trigger(self, trigger: Trigger) -> Trigger:
        """Store a trigger, silently dropping links to unknown actions."""
        trigger.action_ids = [a for a in trigger.action_ids if a in self._actions]
        self._triggers[trigger.id] = trigger
        self._persist_trigger(trigger)
        logger.debug(f"Trigger stored: {trigger.name!r} (id={trigger.id})")
        return trigger

    def get_trigger(self, trigger_id: str) -> Trigger | None:
        return self._triggers.get(trigger_id)

    def set_trigger_enabled(self, trigger_id: str, enabled: bool) -> bool:
        trigger = self._triggers.get(trigger_id)
        if trigger is None:
            return False
        trigger.enabled = bool(enabled)
        trigger.updated_at = self._clock()
        self._persist_trigger(trigger)
        return True

    def list_triggers(self) -> list[Trigger]:
        """Newest first."""
        return sorted(self._triggers.values(), key=lambda t: t.created_at, reverse=True)

    def triggers(self) -> list[Trigger]:
        """Evaluation order: creation (insertion) order."""
        return list(self._triggers.values())

    # ── Hydration ─────────────────────────────────────────────────────────────

    def load(self, actions: Iterable[Action], triggers: Iterable[Trigger]) -> None:
        """Replace contents with stored records. Nothing is written back."""
        self._actions = {a.id: a for a in actions}
        self._triggers = {t.id: t for t in triggers}

    def _persist_action(self, action: Action) -> None:
        if self._writer is not None:
            self._writer.submit(self._writer.storage.upsert_action, action)

    def _persist_trigger(self, trigger: Trigger) -> None:
        if self._writer is not None:
            self._writer.submit(self._writer.storage.upsert_trigger, trigger)
