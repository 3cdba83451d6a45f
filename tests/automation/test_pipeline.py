"""Tests for the trigger pipeline."""

from datetime import datetime

import pytest

from tabwatch.automation.events import EventLog
from tabwatch.automation.history import EvaluationLog, MessageHistory
from tabwatch.automation.models import Action, AutomationEventKind, Trigger
from tabwatch.automation.pipeline import (
    PipelineContext,
    evaluate_trigger_on_message,
    run_trigger_pipeline,
)
from tabwatch.automation.store import RuleStore
from tabwatch.core.bus import EventBus
from tabwatch.core.events import Event, EventType
from tabwatch.scheduler.schedule import parse_schedule

# 2026-10-13 is a Tuesday, 2026-10-17 a Saturday
TUESDAY_0900 = datetime(2026, 10, 13, 9, 0).timestamp()
SATURDAY_0900 = datetime(2026, 10, 17, 9, 0).timestamp()

RECEIVED = AutomationEventKind.MESSAGE_RECEIVED
MATCHED = AutomationEventKind.TRIGGER_MATCHED
PLANNED = AutomationEventKind.ACTION_PLANNED
SKIPPED = AutomationEventKind.ACTION_SKIPPED


def make_action(name="Page on-call", schedule="always", enabled=True, created_at=1.0) -> Action:
    return Action(
        name=name,
        schedule_text=schedule,
        schedule=parse_schedule(schedule),
        enabled=enabled,
        created_at=created_at,
    )


def make_trigger(
    name="Urgent",
    source_tab="any",
    match_text="",
    schedule="always",
    action_ids=(),
    enabled=True,
    created_at=2.0,
) -> Trigger:
    return Trigger(
        name=name,
        source_tab=source_tab,
        match_text=match_text,
        schedule_text=schedule,
        schedule=parse_schedule(schedule),
        action_ids=list(action_ids),
        enabled=enabled,
        created_at=created_at,
    )


@pytest.fixture
def ctx():
    return PipelineContext(
        rules=RuleStore(),
        history=MessageHistory(),
        evaluations=EvaluationLog(),
        events=EventLog(),
    )


def run(ctx, tab_id="slack", title="URGENT: deploy", body="", created_at=TUESDAY_0900):
    return run_trigger_pipeline(
        ctx, tab_id, {"title": title, "body": body, "source": "simulation", "created_at": created_at}
    )


# ━━━ End-to-end scenarios ━━━


def test_matching_message_plans_action_on_weekday(ctx):
    action = ctx.rules.add_action(make_action(schedule="weekdays 09:00"))
    ctx.rules.add_trigger(
        make_trigger(source_tab="slack", match_text="urgent,asap", action_ids=[action.id])
    )

    result = run(ctx, created_at=TUESDAY_0900)

    assert result.kinds == [RECEIVED, MATCHED, PLANNED]
    planned = result.events[-1].payload
    assert planned["action_id"] == action.id
    assert planned["reason"] == "matched trigger and active schedule"


def test_matching_message_skips_action_on_weekend(ctx):
    action = ctx.rules.add_action(make_action(schedule="weekdays 09:00"))
    ctx.rules.add_trigger(
        make_trigger(source_tab="slack", match_text="urgent,asap", action_ids=[action.id])
    )

    result = run(ctx, created_at=SATURDAY_0900)

    assert result.kinds == [RECEIVED, MATCHED, SKIPPED]
    reason = result.events[-1].payload["reason"]
    assert reason.startswith("schedule inactive")
    assert "weekdays" in reason


def test_source_tab_mismatch_records_evaluation_only(ctx):
    trigger = ctx.rules.add_trigger(make_trigger(source_tab="teams"))

    result = run(ctx, tab_id="slack")

    assert result.kinds == [RECEIVED]
    assert len(result.evaluations) == 1
    evaluation = result.evaluations[0]
    assert evaluation.trigger_id == trigger.id
    assert evaluation.matched is False
    assert evaluation.reason == "source tab mismatch (teams != slack)"


# ━━━ Ordering & determinism ━━━


def test_same_inputs_give_same_event_sequence(ctx):
    a1 = ctx.rules.add_action(make_action("A1"))
    a2 = ctx.rules.add_action(make_action("A2", enabled=False))
    ctx.rules.add_trigger(make_trigger("T1", match_text="deploy", action_ids=[a1.id, a2.id]))
    ctx.rules.add_trigger(make_trigger("T2", match_text="nothing-here"))
    ctx.rules.add_trigger(make_trigger("T3", action_ids=[a2.id, a1.id]))

    first = run(ctx)
    second = run(ctx)

    def shape(result):
        return [(e.kind, e.payload.get("trigger_id"), e.payload.get("action_id")) for e in result.events]

    assert first.kinds == second.kinds
    assert shape(first) == shape(second)
    assert first.kinds == [RECEIVED, MATCHED, PLANNED, SKIPPED, MATCHED, SKIPPED, PLANNED]


def test_actions_follow_linked_order(ctx):
    a1 = ctx.rules.add_action(make_action("A1"))
    a2 = ctx.rules.add_action(make_action("A2"))
    ctx.rules.add_trigger(make_trigger(action_ids=[a2.id, a1.id, a2.id]))

    result = run(ctx)

    assert [e.payload["action_id"] for e in result.planned] == [a2.id, a1.id, a2.id]


# ━━━ Trigger checks ━━━


def test_disabled_trigger(ctx):
    ctx.rules.add_trigger(make_trigger(enabled=False))
    result = run(ctx)
    assert result.kinds == [RECEIVED]
    assert result.evaluations[0].reason == "trigger disabled"


def test_inactive_trigger_schedule(ctx):
    ctx.rules.add_trigger(make_trigger(schedule="weekdays 17:00"))
    result = run(ctx)
    assert result.kinds == [RECEIVED]
    assert result.evaluations[0].reason.startswith("trigger schedule inactive")


def test_unknown_trigger_schedule_is_not_a_match(ctx):
    ctx.rules.add_trigger(make_trigger(schedule="when the moon is full"))
    result = run(ctx)
    assert result.kinds == [RECEIVED]
    assert result.evaluations[0].matched is False
    assert result.evaluations[0].reason.startswith("trigger schedule unknown")


def test_schedule_uses_message_time_not_wall_clock(ctx):
    trigger = make_trigger(schedule="once 2026-10-13T09:00")
    assert evaluate_trigger_on_message(
        trigger, run(ctx, created_at=TUESDAY_0900 + 30).message
    ).matched is True
    assert evaluate_trigger_on_message(
        trigger, run(ctx, created_at=TUESDAY_0900 + 3600).message
    ).matched is False


def test_match_expression_decides_last(ctx):
    ctx.rules.add_trigger(make_trigger(match_text="regex:^lunch"))
    result = run(ctx, title="URGENT: deploy")
    assert result.kinds == [RECEIVED]
    assert result.evaluations[0].reason == "regex did not match"


# ━━━ Action checks ━━━


def test_unknown_action_is_skipped(ctx):
    trigger = ctx.rules.add_trigger(make_trigger())
    trigger.action_ids.append("action_missing")

    result = run(ctx)

    assert result.kinds == [RECEIVED, MATCHED, SKIPPED]
    assert result.events[-1].payload["reason"] == "action not found"


def test_disabled_action_is_skipped(ctx):
    action = ctx.rules.add_action(make_action(enabled=False))
    ctx.rules.add_trigger(make_trigger(action_ids=[action.id]))
    result = run(ctx)
    assert result.events[-1].payload["reason"] == "action disabled"


def test_unknown_action_schedule_is_skipped(ctx):
    action = ctx.rules.add_action(make_action(schedule="sometimes"))
    ctx.rules.add_trigger(make_trigger(action_ids=[action.id]))
    result = run(ctx)
    assert result.kinds[-1] == SKIPPED
    assert result.events[-1].payload["reason"].startswith("schedule unknown")


# ━━━ State ━━━


def test_pipeline_records_into_context(ctx):
    ctx.rules.add_trigger(make_trigger())
    ctx.rules.add_trigger(make_trigger(source_tab="gmail"))

    result = run(ctx)

    assert ctx.history.recent()[0] is result.message
    assert len(ctx.evaluations) == 2
    assert [e.kind for e in ctx.events.in_order()] == result.kinds


def test_message_defaults(ctx):
    result = run_trigger_pipeline(ctx, "slack", {})
    assert result.message.title == ""
    assert result.message.source == "unknown"
    assert result.message.created_at > 0


@pytest.mark.asyncio
async def test_events_broadcast_on_bus():
    bus = EventBus()
    ctx = PipelineContext(
        rules=RuleStore(),
        history=MessageHistory(),
        evaluations=EvaluationLog(),
        events=EventLog(bus=bus),
    )
    ctx.rules.add_trigger(make_trigger())
    received: list[Event] = []

    async def handler(event: Event):
        received.append(event)

    bus.on("automation:*", handler)
    run(ctx)
    await bus.drain()

    assert [e.type for e in received] == [
        EventType.MESSAGE_RECEIVED,
        EventType.TRIGGER_MATCHED,
    ]
    assert received[0].data["kind"] == RECEIVED
    assert received[0].data["tab_id"] == "slack"
