"""
Tabwatch event system — types and constants.

Two families of events flow over the bus:
- automation events produced by the trigger pipeline (persisted, bounded)
- runtime events (tab state, capture reports, lifecycle) for observers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
import time
import uuid


class EventType:
    """
    Event type constants.

    Hierarchical naming: "category:action"
    Supports wildcard matching: "automation:*" matches "automation:trigger-matched"
    """

    # System lifecycle
    SYSTEM_START = "system:start"
    SYSTEM_STOP = "system:stop"

    # Automation pipeline (payload of an AutomationEvent)
    MESSAGE_RECEIVED = "automation:message-received"
    TRIGGER_MATCHED = "automation:trigger-matched"
    ACTION_PLANNED = "automation:action-planned"
    ACTION_SKIPPED = "automation:action-skipped"

    # Browser tabs
    TAB_STATE = "tab:state"

    # Capture
    CAPTURE_COMPLETE = "capture:complete"

    # Wildcard
    ALL = "*"

    @staticmethod
    def for_automation(kind: str) -> str:
        """'trigger-matched' → 'automation:trigger-matched'"""
        return f"automation:{kind}"


@dataclass(slots=True)
class Event:
    """
    A single event on the bus.

    - Typed (hierarchical string)
    - Timestamped
    - Traceable (source + parent_id)
    - Extensible (data dict for event-specific payload)
    """

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    timestamp: float = field(default_factory=time.time)
    parent_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
