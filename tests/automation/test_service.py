"""Tests for AutomationService — the management surface."""

import json
from datetime import datetime

import pytest

from tabwatch.automation.models import AutomationEventKind, MessageSource
from tabwatch.automation.service import AutomationService
from tabwatch.core.config import TabwatchConfig
from tabwatch.llm.mock import MockCodeGenerator
from tabwatch.llm.templates import UNAVAILABLE_NOTE

SATURDAY_0900 = datetime(2026, 10, 17, 9, 0).timestamp()


# ━━━ Actions ━━━


@pytest.mark.asyncio
async def test_add_action_defaults(service):
    action = await service.add_action()

    assert action.name == "Untitled Action"
    assert action.kind == "custom"
    assert action.schedule_text == "always"
    assert action.enabled is True
    assert "# Action: Untitled Action" in action.generated_code


@pytest.mark.asyncio
async def test_add_action_without_llm_uses_template(service, mock_codegen):
    action = await service.add_action("Notify", instructions="Ping #ops")

    assert mock_codegen.call_count == 0
    assert "# Plain-text instructions: Ping #ops" in action.generated_code
    assert UNAVAILABLE_NOTE not in action.generated_code


@pytest.mark.asyncio
async def test_add_action_with_llm(service, mock_codegen):
    mock_codegen.set_response("async def run_action(context):\n    return {}")

    action = await service.add_action("Notify", use_llm=True)

    assert action.generated_code.startswith("async def run_action")
    assert mock_codegen.calls[0]["kind"] == "action"
    assert mock_codegen.calls[0]["context"]["name"] == "Notify"
    assert "generated_code" not in mock_codegen.calls[0]["context"]


@pytest.mark.asyncio
async def test_add_action_llm_unavailable_appends_note(service):
    action = await service.add_action("Notify", use_llm=True)

    assert action.generated_code.startswith("# Action: Notify")
    assert action.generated_code.rstrip().endswith(UNAVAILABLE_NOTE)


@pytest.mark.asyncio
async def test_action_is_persisted(service, storage):
    action = await service.add_action("Notify")
    await service.flush()
    assert storage.actions[action.id].name == "Notify"


# ━━━ Triggers ━━━


@pytest.mark.asyncio
async def test_add_trigger_defaults(service):
    trigger = await service.add_trigger()

    assert trigger.name == "Untitled Trigger"
    assert trigger.source_tab == "any"
    assert trigger.match_text == ""
    assert trigger.action_ids == []


@pytest.mark.asyncio
async def test_add_trigger_drops_unknown_action_ids(service):
    action = await service.add_action("A")
    trigger = await service.add_trigger("T", action_ids=[action.id, "action_nope"])
    assert trigger.action_ids == [action.id]


@pytest.mark.asyncio
async def test_add_trigger_with_llm(service, mock_codegen):
    mock_codegen.set_response("def matches_message(message):\n    return True")
    trigger = await service.add_trigger("T", match_text="urgent", use_llm=True)
    assert trigger.generated_code.startswith("def matches_message")
    assert mock_codegen.calls[0]["kind"] == "trigger"


@pytest.mark.asyncio
async def test_toggles(service):
    action = await service.add_action("A")
    trigger = await service.add_trigger("T")

    assert service.set_action_enabled(action.id, False) is True
    assert service.set_trigger_enabled(trigger.id, False) is True
    assert action.enabled is False
    assert trigger.enabled is False

    assert service.set_action_enabled("action_missing", True) is False
    assert service.set_trigger_enabled("trigger_missing", True) is False


@pytest.mark.asyncio
async def test_lists_are_newest_first(service, clock):
    first = await service.add_action("first")
    clock.advance(1)
    second = await service.add_action("second")
    clock.advance(1)
    t1 = await service.add_trigger("t1")
    clock.advance(1)
    t2 = await service.add_trigger("t2")

    assert [a.id for a in service.list_actions()] == [second.id, first.id]
    assert [t.id for t in service.list_triggers()] == [t2.id, t1.id]


# ━━━ Messages ━━━


@pytest.mark.asyncio
async def test_simulate_message_defaults(service, clock):
    result = service.simulate_message()

    assert result.message.tab_id == "unknown"
    assert result.message.title == "Simulated message"
    assert result.message.source == MessageSource.SIMULATION
    assert result.message.created_at == clock.now


@pytest.mark.asyncio
async def test_simulate_message_end_to_end(service):
    action = await service.add_action("Page", schedule_text="weekdays 09:00")
    await service.add_trigger(
        "Urgent", source_tab="slack", match_text="urgent,asap", action_ids=[action.id]
    )

    weekday = service.simulate_message("slack", "URGENT: deploy")
    weekend = service.simulate_message("slack", "URGENT: deploy", created_at=SATURDAY_0900)

    assert weekday.kinds[-1] == AutomationEventKind.ACTION_PLANNED
    assert weekend.kinds[-1] == AutomationEventKind.ACTION_SKIPPED
    assert service.recent_events()[0].kind == AutomationEventKind.ACTION_SKIPPED


@pytest.mark.asyncio
async def test_handle_notification_source(service):
    result = service.handle_notification("teams", "New chat", "hello")
    assert result.message.source == MessageSource.NOTIFICATION
    assert service.list_messages()[0].id == result.message.id


@pytest.mark.asyncio
async def test_pipeline_output_is_persisted(service, storage):
    await service.add_trigger("T")
    result = service.simulate_message("slack", "hello")
    await service.flush()

    assert result.message.id in storage.messages
    assert len(storage.evaluations) == 1
    assert len(storage.events) == len(result.events)


@pytest.mark.asyncio
async def test_trigger_history_joins_messages(service):
    trigger = await service.add_trigger("T", match_text="deploy")
    service.simulate_message("slack", "deploy now")
    service.simulate_message("slack", "lunch?")

    rows = service.trigger_history(trigger.id)

    assert len(rows) == 2
    assert rows[0]["matched"] is False
    assert rows[0]["message"]["title"] == "lunch?"
    assert rows[1]["matched"] is True
    assert rows[1]["reason"] == 'matched keyword "deploy"'


@pytest.mark.asyncio
async def test_trigger_history_unknown_trigger(service):
    assert service.trigger_history("trigger_missing") == []


# ━━━ Inspection ━━━


@pytest.mark.asyncio
async def test_inspect_schedule(service):
    await service.add_action("weekday", schedule_text="weekdays 09:00")
    off = await service.add_action("off")
    service.set_action_enabled(off.id, False)
    await service.add_trigger("vague", schedule_text="every so often")

    report = service.inspect_schedule()

    assert report["ok"] is True
    states = {a["name"]: a["state"] for a in report["actions"]}
    assert states["weekday"]["active"] is True
    assert states["off"] == {"active": False, "reason": "disabled"}
    trigger_state = report["triggers"][0]["state"]
    assert trigger_state["active"] is None
    assert "Unparsed schedule text" in trigger_state["reason"]


@pytest.mark.asyncio
async def test_inspect_schedule_at_given_time(service):
    await service.add_action("weekday", schedule_text="weekdays 09:00")
    report = service.inspect_schedule(at=SATURDAY_0900)
    assert report["at"] == SATURDAY_0900
    assert report["actions"][0]["state"]["active"] is False


def test_inspect_schedule_invalid_timestamp(service):
    assert service.inspect_schedule(at="not a date") == {
        "ok": False,
        "error": "Invalid timestamp.",
    }


# ━━━ Code-generation settings ━━━


@pytest.mark.asyncio
async def test_set_codegen_settings_persists(service, storage):
    settings = await service.set_codegen_settings(provider="anthropic", api_key=" sk-1 ")

    assert settings.provider == "anthropic"
    assert settings.api_key == "sk-1"
    assert settings.model == "gpt-4.1-mini"
    assert service.get_codegen_settings() == settings
    assert json.loads(storage.settings["codegen"])["provider"] == "anthropic"


@pytest.mark.asyncio
async def test_codegen_settings_are_pushed_to_generator(config, storage):
    class Recording(MockCodeGenerator):
        def update_settings(self, settings):
            self.applied = settings

    generator = Recording()
    service = AutomationService(config, storage, codegen=generator)
    await service.set_codegen_settings(model="other-model")
    assert generator.applied.model == "other-model"


# ━━━ Lifecycle ━━━


@pytest.mark.asyncio
async def test_hydrate_restores_state(config, storage, clock):
    first = AutomationService(config, storage, clock=clock)
    action = await first.add_action("A")
    trigger = await first.add_trigger("T", action_ids=[action.id])
    first.simulate_message("slack", "hello")
    await first.set_codegen_settings(provider="gemini")
    await first.flush()

    second = AutomationService(TabwatchConfig(), storage, clock=clock)
    await second.hydrate()

    assert [a.id for a in second.list_actions()] == [action.id]
    assert second.rules.get_trigger(trigger.id).action_ids == [action.id]
    assert second.list_messages()[0].title == "hello"
    assert len(second.recent_events()) == len(first.recent_events())
    assert second.get_codegen_settings().provider == "gemini"


@pytest.mark.asyncio
async def test_hydrate_ignores_unreadable_settings(config, storage):
    storage.settings["codegen"] = "{not json"
    service = AutomationService(config, storage)
    await service.hydrate()
    assert service.get_codegen_settings().provider == "openai"


@pytest.mark.asyncio
async def test_shutdown_closes_generator_and_storage(service, storage, mock_codegen):
    await service.add_action("A")
    await service.shutdown()
    assert mock_codegen.closed is True
    assert storage.closed is True
    assert "A" in [a.name for a in storage.actions.values()]
