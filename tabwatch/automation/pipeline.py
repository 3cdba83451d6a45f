"""
Trigger pipeline — turn one incoming message into an ordered event trail.

Steps, strictly ordered, all synchronous:

1. Store the message, emit "message-received".
2. For every trigger (store insertion order):
     a. source tab must be "any" or the message's tab
     b. trigger must be enabled
     c. trigger schedule, evaluated at the message's created_at, must be
        active (False → no match; None/unknown → no match)
     d. match expression against title/body
   An evaluation row is recorded whatever the outcome.
3. For each matched trigger emit "trigger-matched", then for each linked
   action id in list order emit "action-skipped" (not found / disabled /
   schedule not active) or "action-planned".

Nothing is executed — planned actions are handed to observers.
Given fixed rules and a fixed clock, two runs produce identical events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from tabwatch.automation.events import EventLog
from tabwatch.automation.history import EvaluationLog, MessageHistory
from tabwatch.automation.matching import MatchResult, evaluate_match
from tabwatch.automation.models import (
    ANY_TAB,
    AutomationEvent,
    AutomationEventKind,
    Message,
    MessageSource,
    Trigger,
    TriggerEvaluation,
)
from tabwatch.automation.store import RuleStore
from tabwatch.scheduler.schedule import schedule_status_at

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """The state a pipeline run reads and appends to."""

    rules: RuleStore
    history: MessageHistory
    evaluations: EvaluationLog
    events: EventLog


@dataclass
class PipelineResult:
    message: Message
    evaluations: list[TriggerEvaluation] = field(default_factory=list)
    events: list[AutomationEvent] = field(default_factory=list)

    @property
    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]

    @property
    def planned(self) -> list[AutomationEvent]:
        return [e for e in self.events if e.kind == AutomationEventKind.ACTION_PLANNED]


def evaluate_trigger_on_message(trigger: Trigger, message: Message) -> MatchResult:
    if trigger.source_tab != ANY_TAB and trigger.source_tab != message.tab_id:
        return MatchResult(
            False, f"source tab mismatch ({trigger.source_tab} != {message.tab_id})"
        )
    if not trigger.enabled:
        return MatchResult(False, "trigger disabled")
    status = schedule_status_at(trigger.schedule, message.created_at)
    if status.active is False:
        return MatchResult(False, f"trigger schedule inactive ({status.reason})")
    if status.active is None:
        return MatchResult(False, f"trigger schedule unknown ({status.reason})")
    return evaluate_match(trigger.match_text, message)


def run_trigger_pipeline(
    ctx: PipelineContext, tab_id: str, payload: Mapping[str, Any]
) -> PipelineResult:
    """
    Run the pipeline for one message.

    ``payload`` carries title, body, source and optionally created_at.
    """
    message = ctx.history.add(
        tab_id,
        title=payload.get("title") or "",
        body=payload.get("body") or "",
        source=payload.get("source") or MessageSource.UNKNOWN,
        created_at=payload.get("created_at"),
    )
    result = PipelineResult(message=message)
    emit = _collector(ctx.events, result)

    emit(
        AutomationEventKind.MESSAGE_RECEIVED,
        tab_id=tab_id,
        message_id=message.id,
        source=message.source,
        title=message.title,
    )

    for trigger in ctx.rules.triggers():
        outcome = evaluate_trigger_on_message(trigger, message)
        result.evaluations.append(
            ctx.evaluations.record(trigger.id, message.id, outcome.matched, outcome.reason)
        )
        if not outcome.matched:
            continue

        emit(
            AutomationEventKind.TRIGGER_MATCHED,
            trigger_id=trigger.id,
            trigger_name=trigger.name,
            message_id=message.id,
            message_title=message.title,
        )
        _plan_actions(ctx, trigger, message, emit)

    logger.debug(
        f"Pipeline for {message.id} ({tab_id}): "
        f"{len(result.evaluations)} evaluation(s), {len(result.planned)} planned"
    )
    return result


def _plan_actions(ctx: PipelineContext, trigger: Trigger, message: Message, emit) -> None:
    for action_id in trigger.action_ids:
        action = ctx.rules.get_action(action_id)
        if action is None:
            emit(
                AutomationEventKind.ACTION_SKIPPED,
                trigger_id=trigger.id,
                action_id=action_id,
                reason="action not found",
            )
            continue
        if not action.enabled:
            emit(
                AutomationEventKind.ACTION_SKIPPED,
                trigger_id=trigger.id,
                action_id=action.id,
                action_name=action.name,
                reason="action disabled",
            )
            continue
        status = schedule_status_at(action.schedule, message.created_at)
        if status.active is not True:
            state = "inactive" if status.active is False else "unknown"
            emit(
                AutomationEventKind.ACTION_SKIPPED,
                trigger_id=trigger.id,
                action_id=action.id,
                action_name=action.name,
                reason=f"schedule {state} ({status.reason})",
            )
            continue
        emit(
            AutomationEventKind.ACTION_PLANNED,
            trigger_id=trigger.id,
            trigger_name=trigger.name,
            action_id=action.id,
            action_name=action.name,
            action_kind=action.kind,
            message_id=message.id,
            reason="matched trigger and active schedule",
        )


def _collector(events: EventLog, result: PipelineResult):
    def emit(kind: str, **fields: Any) -> AutomationEvent:
        event = events.push(kind, **fields)
        result.events.append(event)
        return event

    return emit
