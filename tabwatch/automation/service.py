"""
AutomationService — the management surface over the automation state.

Owns one RuleStore, MessageHistory, EvaluationLog and EventLog (all
handed to the pipeline by reference) plus the BackgroundWriter that
mirrors them to storage. Everything that produces a message funnels into
run_pipeline(): DOM capture, browser notifications and simulation.

Unknown ids never raise here; toggles return False and lookups return
None or an empty list.

Usage:
    service = AutomationService(config, storage, bus=bus)
    await service.hydrate()
    action = await service.add_action("Page on-call", instructions="...")
    trigger = await service.add_trigger(
        "Urgent", source_tab="slack", match_text="urgent,asap",
        action_ids=[action.id],
    )
    result = service.simulate_message("slack", "URGENT: deploy")
    await service.shutdown()
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Iterable, Mapping

from tabwatch.automation.events import EventLog
from tabwatch.automation.history import EvaluationLog, MessageHistory
from tabwatch.automation.models import (
    ANY_TAB,
    Action,
    AutomationEvent,
    Message,
    MessageSource,
    Trigger,
)
from tabwatch.automation.pipeline import PipelineContext, PipelineResult, run_trigger_pipeline
from tabwatch.automation.store import RuleStore
from tabwatch.core.bus import EventBus
from tabwatch.core.config import CodegenConfig, TabwatchConfig
from tabwatch.llm.base import CodeGenerator, CodeKind, NullCodeGenerator
from tabwatch.llm.templates import (
    UNAVAILABLE_NOTE,
    codegen_context,
    fallback_action_code,
    fallback_trigger_code,
)
from tabwatch.scheduler.schedule import parse_schedule, schedule_status_at, to_timestamp
from tabwatch.store.base import StorageProvider
from tabwatch.store.writer import BackgroundWriter

logger = logging.getLogger(__name__)

TRIGGER_HISTORY_LIMIT = 120
CODEGEN_SETTINGS_KEY = "codegen"


class AutomationService:
    def __init__(
        self,
        config: TabwatchConfig,
        storage: StorageProvider,
        bus: EventBus | None = None,
        codegen: CodeGenerator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._codegen = codegen or NullCodeGenerator()
        self._clock = clock
        self.writer = BackgroundWriter(storage)
        self.rules = RuleStore(writer=self.writer, clock=clock)
        self.history = MessageHistory(
            capacity=config.history.max_messages, writer=self.writer, clock=clock
        )
        self.evaluations = EvaluationLog(
            capacity=config.history.max_evaluations, writer=self.writer, clock=clock
        )
        self.events = EventLog(
            capacity=config.history.max_events, bus=bus, writer=self.writer, clock=clock
        )
        self.context = PipelineContext(
            rules=self.rules,
            history=self.history,
            evaluations=self.evaluations,
            events=self.events,
        )

    @property
    def storage(self) -> StorageProvider:
        return self.writer.storage

    @property
    def codegen(self) -> CodeGenerator:
        return self._codegen

    # ━━━ Lifecycle ━━━

    async def hydrate(self) -> None:
        """Bulk-load stored state and any saved code-generation settings."""
        await self.storage.initialize()
        history = self._config.history
        state = await self.storage.load_state(
            max_messages=history.max_messages,
            max_evaluations=history.max_evaluations,
            max_events=history.max_events,
        )
        self.rules.load(state.actions, state.triggers)
        self.history.load(state.messages)
        self.evaluations.load(state.evaluations)
        self.events.load(state.events)

        saved = await self.storage.get_setting(CODEGEN_SETTINGS_KEY)
        if saved:
            try:
                self._apply_codegen_settings(CodegenConfig(**json.loads(saved)))
            except (ValueError, TypeError) as e:
                logger.warning(f"Ignoring unreadable code-generation settings: {e}")

        logger.info(
            f"Hydrated {len(state.actions)} action(s), {len(state.triggers)} trigger(s), "
            f"{len(state.messages)} message(s)"
        )

    async def flush(self) -> None:
        await self.writer.flush()

    async def shutdown(self, grace: float | None = None) -> None:
        """Drain outstanding writes (bounded) and close storage."""
        if grace is None:
            grace = self._config.storage.shutdown_grace
        await self._codegen.close()
        await self.writer.close(grace=grace)

    # ━━━ Actions ━━━

    async def add_action(
        self,
        name: str = "",
        kind: str = "custom",
        instructions: str = "",
        schedule_text: str = "always",
        use_llm: bool = False,
    ) -> Action:
        now = self._clock()
        schedule_text = (schedule_text or "").strip() or "always"
        action = Action(
            name=(name or "").strip() or "Untitled Action",
            kind=(kind or "").strip() or "custom",
            instructions=(instructions or "").strip(),
            schedule_text=schedule_text,
            schedule=parse_schedule(schedule_text),
            created_at=now,
            updated_at=now,
        )
        action.generated_code = await self._generate(
            CodeKind.ACTION, action, fallback_action_code(action), use_llm
        )
        return self.rules.add_action(action)

    def set_action_enabled(self, action_id: str, enabled: bool) -> bool:
        return self.rules.set_action_enabled(action_id, enabled)

    def list_actions(self) -> list[Action]:
        return self.rules.list_actions()

    # ━━━ Triggers ━━━

    async def add_trigger(
        self,
        name: str = "",
        source_tab: str = ANY_TAB,
        match_text: str = "",
        schedule_text: str = "always",
        action_ids: Iterable[str] = (),
        use_llm: bool = False,
    ) -> Trigger:
        now = self._clock()
        schedule_text = (schedule_text or "").strip() or "always"
        trigger = Trigger(
            name=(name or "").strip() or "Untitled Trigger",
            source_tab=(source_tab or "").strip() or ANY_TAB,
            match_text=(match_text or "").strip(),
            schedule_text=schedule_text,
            schedule=parse_schedule(schedule_text),
            action_ids=[a for a in action_ids if self.rules.has_action(a)],
            created_at=now,
            updated_at=now,
        )
        trigger.generated_code = await self._generate(
            CodeKind.TRIGGER, trigger, fallback_trigger_code(trigger), use_llm
        )
        return self.rules.add_trigger(trigger)

    def set_trigger_enabled(self, trigger_id: str, enabled: bool) -> bool:
        return self.rules.set_trigger_enabled(trigger_id, enabled)

    def list_triggers(self) -> list[Trigger]:
        return self.rules.list_triggers()

    async def _generate(
        self, kind: str, entity: Action | Trigger, fallback: str, use_llm: bool
    ) -> str:
        if not use_llm:
            return fallback
        code = await self._codegen.generate(kind, codegen_context(entity))
        if code:
            return code
        logger.info(f"Code generation unavailable for {kind} {entity.name!r}, using template")
        return f"{fallback}\n{UNAVAILABLE_NOTE}\n"

    # ━━━ Messages ━━━

    def run_pipeline(self, tab_id: str, payload: Mapping[str, Any]) -> PipelineResult:
        """Synchronous: returns once every event for the message is emitted."""
        return run_trigger_pipeline(self.context, tab_id, payload)

    def simulate_message(
        self,
        tab_id: str = "",
        title: str = "",
        body: str = "",
        created_at: Any = None,
    ) -> PipelineResult:
        return self.run_pipeline(
            (tab_id or "").strip() or MessageSource.UNKNOWN,
            {
                "title": (title or "").strip() or "Simulated message",
                "body": (body or "").strip(),
                "source": MessageSource.SIMULATION,
                "created_at": created_at,
            },
        )

    def handle_notification(self, tab_id: str, title: str = "", body: str = "") -> PipelineResult:
        """A browser notification raised by a tab's page."""
        return self.run_pipeline(
            tab_id,
            {"title": title or "", "body": body or "", "source": MessageSource.NOTIFICATION},
        )

    def recent_events(self, limit: int = 200) -> list[AutomationEvent]:
        return self.events.recent(limit)

    def list_messages(self, limit: int = 200) -> list[Message]:
        return self.history.recent(limit)

    def trigger_history(self, trigger_id: str) -> list[dict[str, Any]]:
        """Most recent evaluations of a trigger, each joined with its message."""
        if self.rules.get_trigger(trigger_id) is None:
            return []
        rows = []
        for evaluation in self.evaluations.for_trigger(trigger_id, TRIGGER_HISTORY_LIMIT):
            message = self.history.get(evaluation.message_id)
            rows.append({
                **evaluation.to_dict(),
                "message": message.to_dict() if message else None,
            })
        return rows

    # ━━━ Inspection ━━━

    def inspect_schedule(self, at: Any = None) -> dict[str, Any]:
        """
        Evaluate every trigger and action schedule at ``at`` (default now).

        This is where a malformed schedule becomes visible: it reports
        active=None with the grammar note as reason.
        """
        ts = self._clock() if at is None else to_timestamp(at)
        if ts is None:
            return {"ok": False, "error": "Invalid timestamp."}

        def state(entity: Action | Trigger) -> dict[str, Any]:
            if not entity.enabled:
                return {"active": False, "reason": "disabled"}
            status = schedule_status_at(entity.schedule, ts)
            return {"active": status.active, "reason": status.reason}

        return {
            "ok": True,
            "at": ts,
            "triggers": [
                {
                    "id": t.id,
                    "name": t.name,
                    "enabled": t.enabled,
                    "schedule_text": t.schedule_text,
                    "state": state(t),
                }
                for t in self.rules.list_triggers()
            ],
            "actions": [
                {
                    "id": a.id,
                    "name": a.name,
                    "enabled": a.enabled,
                    "schedule_text": a.schedule_text,
                    "state": state(a),
                }
                for a in self.rules.list_actions()
            ],
        }

    # ━━━ Code-generation settings ━━━

    def get_codegen_settings(self) -> CodegenConfig:
        return self._config.codegen

    async def set_codegen_settings(
        self,
        provider: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        endpoint_override: str | None = None,
    ) -> CodegenConfig:
        """Update, persist and apply code-generation settings. None keeps a field."""
        changes = {
            k: v.strip()
            for k, v in {
                "provider": provider,
                "api_key": api_key,
                "model": model,
                "endpoint_override": endpoint_override,
            }.items()
            if v is not None
        }
        settings = self._config.codegen.model_copy(update=changes)
        self._apply_codegen_settings(settings)
        await self.storage.set_setting(CODEGEN_SETTINGS_KEY, settings.model_dump_json())
        return settings

    def _apply_codegen_settings(self, settings: CodegenConfig) -> None:
        self._config.codegen = settings
        update = getattr(self._codegen, "update_settings", None)
        if update is not None:
            update(settings)
