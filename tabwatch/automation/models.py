"""
Automation data model — messages, actions, triggers and their audit trail.

All records are plain dataclasses with to_dict()/from_dict() so they
serialise cleanly to SQLite rows and JSON. Timestamps are unix seconds.

Identifiers look like "msg_1760700000123_482913": prefix, creation
milliseconds, random suffix.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Any

from tabwatch.scheduler.schedule import Schedule, parse_schedule

ANY_TAB = "any"


def new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{random.randrange(1_000_000)}"


class MessageSource:
    """Origin tags for messages. DOM captures use "dom-<site>[:host]"."""

    NOTIFICATION = "notification"
    SIMULATION = "simulation"
    UNKNOWN = "unknown"


class AutomationEventKind:
    MESSAGE_RECEIVED = "message-received"
    TRIGGER_MATCHED = "trigger-matched"
    ACTION_PLANNED = "action-planned"
    ACTION_SKIPPED = "action-skipped"


@dataclass(frozen=True)
class Message:
    """A captured or simulated message. Immutable once created."""

    id: str
    tab_id: str
    title: str
    body: str
    source: str
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tab_id": self.tab_id,
            "title": self.title,
            "body": self.body,
            "source": self.source,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Message:
        return cls(
            id=d["id"],
            tab_id=d["tab_id"],
            title=d.get("title") or "",
            body=d.get("body") or "",
            source=d.get("source") or MessageSource.UNKNOWN,
            created_at=float(d["created_at"]),
        )


@dataclass
class Action:
    """Something to do when a trigger matches. Planned, never executed here."""

    name: str
    kind: str = "custom"           # free-form classification tag
    instructions: str = ""         # natural language
    schedule_text: str = "always"
    schedule: Schedule = field(default_factory=lambda: parse_schedule("always"))
    enabled: bool = True
    generated_code: str = ""

    id: str = field(default_factory=lambda: new_id("action"))
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "instructions": self.instructions,
            "schedule_text": self.schedule_text,
            "schedule": self.schedule.to_dict(),
            "enabled": self.enabled,
            "generated_code": self.generated_code,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Action:
        schedule_text = d.get("schedule_text") or "always"
        return cls(
            id=d["id"],
            name=d["name"],
            kind=d.get("kind") or "custom",
            instructions=d.get("instructions") or "",
            schedule_text=schedule_text,
            schedule=Schedule.from_dict(d.get("schedule")) if d.get("schedule") else parse_schedule(schedule_text),
            enabled=bool(d.get("enabled", True)),
            generated_code=d.get("generated_code") or "",
            created_at=float(d["created_at"]),
            updated_at=float(d.get("updated_at") or d["created_at"]),
        )


@dataclass
class Trigger:
    """Matches incoming messages and links to actions to plan."""

    name: str
    source_tab: str = ANY_TAB      # "any" or a tab id
    match_text: str = ""           # match expression DSL
    schedule_text: str = "always"
    schedule: Schedule = field(default_factory=lambda: parse_schedule("always"))
    action_ids: list[str] = field(default_factory=list)
    enabled: bool = True
    generated_code: str = ""

    id: str = field(default_factory=lambda: new_id("trigger"))
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "source_tab": self.source_tab,
            "match_text": self.match_text,
            "schedule_text": self.schedule_text,
            "schedule": self.schedule.to_dict(),
            "action_ids": list(self.action_ids),
            "enabled": self.enabled,
            "generated_code": self.generated_code,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Trigger:
        schedule_text = d.get("schedule_text") or "always"
        return cls(
            id=d["id"],
            name=d["name"],
            source_tab=d.get("source_tab") or ANY_TAB,
            match_text=d.get("match_text") or "",
            schedule_text=schedule_text,
            schedule=Schedule.from_dict(d.get("schedule")) if d.get("schedule") else parse_schedule(schedule_text),
            action_ids=list(d.get("action_ids") or []),
            enabled=bool(d.get("enabled", True)),
            generated_code=d.get("generated_code") or "",
            created_at=float(d["created_at"]),
            updated_at=float(d.get("updated_at") or d["created_at"]),
        )


@dataclass(frozen=True)
class TriggerEvaluation:
    """One row of the trigger audit trail."""

    id: str
    trigger_id: str
    message_id: str
    matched: bool
    reason: str
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trigger_id": self.trigger_id,
            "message_id": self.message_id,
            "matched": self.matched,
            "reason": self.reason,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TriggerEvaluation:
        return cls(
            id=d["id"],
            trigger_id=d["trigger_id"],
            message_id=d["message_id"],
            matched=bool(d["matched"]),
            reason=d.get("reason") or "",
            created_at=float(d["created_at"]),
        )


@dataclass(frozen=True)
class AutomationEvent:
    """
    A pipeline decision. Ordered by insertion; ``id`` only keys the
    durable copy so repeated writes stay idempotent.
    """

    kind: str
    payload: dict[str, Any]
    created_at: float
    id: str = field(default_factory=lambda: new_id("event"))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **self.payload, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AutomationEvent:
        payload = {k: v for k, v in d.items() if k not in ("id", "kind", "created_at")}
        return cls(
            kind=d["kind"],
            payload=payload,
            created_at=float(d["created_at"]),
            id=d.get("id") or new_id("event"),
        )
