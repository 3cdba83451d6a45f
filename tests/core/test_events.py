"""Tests for the Event system."""

from tabwatch.core.events import Event, EventType


def test_event_creation():
    event = Event(type=EventType.TAB_STATE, data={"tab_id": "slack"})

    assert event.type == "tab:state"
    assert event.data == {"tab_id": "slack"}
    assert event.id  # auto-generated
    assert event.timestamp > 0
    assert event.parent_id is None
    assert event.metadata == {}
    assert event.source == ""


def test_event_type_constants():
    assert EventType.SYSTEM_START == "system:start"
    assert EventType.ACTION_PLANNED == "automation:action-planned"
    assert EventType.CAPTURE_COMPLETE == "capture:complete"
    assert EventType.ALL == "*"


def test_for_automation_matches_constants():
    assert EventType.for_automation("message-received") == EventType.MESSAGE_RECEIVED
    assert EventType.for_automation("action-skipped") == EventType.ACTION_SKIPPED
