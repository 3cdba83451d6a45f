"""
SQLite storage backend.

Uses aiosqlite for async SQLite access.
WAL mode enabled for concurrent read support.

DB: ~/.tabwatch/tabwatch.db

Tables:
    actions              id PK, schedule JSON
    triggers             id PK, schedule JSON, action_ids JSON
    messages             id PK
    trigger_evaluations  id PK
    automation_events    id PK, payload JSON
    settings             key PK (code-generation settings etc.)
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

import aiosqlite

from tabwatch.automation.models import (
    Action,
    AutomationEvent,
    Message,
    Trigger,
    TriggerEvaluation,
)
from tabwatch.core.errors import StorageError
from tabwatch.store.base import StorageProvider, StoredState

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS actions (
        id             TEXT PRIMARY KEY,
        name           TEXT NOT NULL,
        kind           TEXT NOT NULL,
        instructions   TEXT NOT NULL,
        schedule_text  TEXT NOT NULL,
        schedule       TEXT NOT NULL,
        enabled        INTEGER NOT NULL DEFAULT 1,
        generated_code TEXT NOT NULL DEFAULT '',
        created_at     REAL NOT NULL,
        updated_at     REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS triggers (
        id             TEXT PRIMARY KEY,
        name           TEXT NOT NULL,
        source_tab     TEXT NOT NULL,
        match_text     TEXT NOT NULL,
        schedule_text  TEXT NOT NULL,
        schedule       TEXT NOT NULL,
        action_ids     TEXT NOT NULL,
        enabled        INTEGER NOT NULL DEFAULT 1,
        generated_code TEXT NOT NULL DEFAULT '',
        created_at     REAL NOT NULL,
        updated_at     REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id         TEXT PRIMARY KEY,
        tab_id     TEXT NOT NULL,
        title      TEXT NOT NULL,
        body       TEXT NOT NULL,
        source     TEXT NOT NULL,
        created_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trigger_evaluations (
        id         TEXT PRIMARY KEY,
        trigger_id TEXT NOT NULL,
        message_id TEXT NOT NULL,
        matched    INTEGER NOT NULL,
        reason     TEXT NOT NULL,
        created_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS automation_events (
        id         TEXT PRIMARY KEY,
        kind       TEXT NOT NULL,
        payload    TEXT NOT NULL,
        created_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key        TEXT PRIMARY KEY,
        value      TEXT NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_evaluations_trigger ON trigger_evaluations(trigger_id)",
)


class SQLiteStorage(StorageProvider):
    """
    SQLite-based automation storage.

    Usage:
        storage = SQLiteStorage("~/.tabwatch/tabwatch.db")
        await storage.initialize()

        await storage.upsert_trigger(trigger)
        state = await storage.load_state()
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Initialize the database and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(str(self._db_path))
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA synchronous=NORMAL")
            for statement in _SCHEMA:
                await self._db.execute(statement)
            await self._db.commit()
            logger.debug(f"SQLite storage initialized at {self._db_path}")
        except Exception as e:
            raise StorageError(f"Failed to initialize SQLite at {self._db_path}: {e}")

    async def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db  # type: ignore[return-value]

    async def _write(self, sql: str, params: dict | tuple, what: str) -> None:
        db = await self._ensure_db()
        try:
            await db.execute(sql, params)
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to write {what}: {e}")

    # ── Writes ────────────────────────────────────────────────────────────────

    async def upsert_action(self, action: Action) -> None:
        await self._write(
            """
            INSERT INTO actions (id, name, kind, instructions, schedule_text, schedule,
                                 enabled, generated_code, created_at, updated_at)
            VALUES (:id, :name, :kind, :instructions, :schedule_text, :schedule,
                    :enabled, :generated_code, :created_at, :updated_at)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, kind=excluded.kind,
                instructions=excluded.instructions, schedule_text=excluded.schedule_text,
                schedule=excluded.schedule, enabled=excluded.enabled,
                generated_code=excluded.generated_code, updated_at=excluded.updated_at
            """,
            {
                **action.to_dict(),
                "schedule": json.dumps(action.schedule.to_dict()),
                "enabled": int(action.enabled),
            },
            f"action {action.id}",
        )

    async def upsert_trigger(self, trigger: Trigger) -> None:
        await self._write(
            """
            INSERT INTO triggers (id, name, source_tab, match_text, schedule_text, schedule,
                                  action_ids, enabled, generated_code, created_at, updated_at)
            VALUES (:id, :name, :source_tab, :match_text, :schedule_text, :schedule,
                    :action_ids, :enabled, :generated_code, :created_at, :updated_at)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, source_tab=excluded.source_tab,
                match_text=excluded.match_text, schedule_text=excluded.schedule_text,
                schedule=excluded.schedule, action_ids=excluded.action_ids,
                enabled=excluded.enabled, generated_code=excluded.generated_code,
                updated_at=excluded.updated_at
            """,
            {
                **trigger.to_dict(),
                "schedule": json.dumps(trigger.schedule.to_dict()),
                "action_ids": json.dumps(trigger.action_ids),
                "enabled": int(trigger.enabled),
            },
            f"trigger {trigger.id}",
        )

    async def insert_message(self, message: Message) -> None:
        await self._write(
            """
            INSERT OR IGNORE INTO messages (id, tab_id, title, body, source, created_at)
            VALUES (:id, :tab_id, :title, :body, :source, :created_at)
            """,
            message.to_dict(),
            f"message {message.id}",
        )

    async def insert_evaluation(self, evaluation: TriggerEvaluation) -> None:
        await self._write(
            """
            INSERT OR IGNORE INTO trigger_evaluations
                (id, trigger_id, message_id, matched, reason, created_at)
            VALUES (:id, :trigger_id, :message_id, :matched, :reason, :created_at)
            """,
            {**evaluation.to_dict(), "matched": int(evaluation.matched)},
            f"evaluation {evaluation.id}",
        )

    async def insert_event(self, event: AutomationEvent) -> None:
        await self._write(
            """
            INSERT OR IGNORE INTO automation_events (id, kind, payload, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (event.id, event.kind, json.dumps(event.payload, default=str), event.created_at),
            f"event {event.id}",
        )

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def load_state(
        self,
        max_messages: int = 400,
        max_evaluations: int = 1200,
        max_events: int = 400,
    ) -> StoredState:
        db = await self._ensure_db()
        try:
            state = StoredState()
            async with db.execute("SELECT * FROM actions ORDER BY created_at ASC") as cur:
                state.actions = [self._row_to_action(r) for r in await cur.fetchall()]
            async with db.execute("SELECT * FROM triggers ORDER BY created_at ASC") as cur:
                state.triggers = [self._row_to_trigger(r) for r in await cur.fetchall()]
            async with db.execute(
                "SELECT * FROM messages ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (max_messages,),
            ) as cur:
                state.messages = [Message.from_dict(dict(r)) for r in await cur.fetchall()]
            async with db.execute(
                "SELECT * FROM trigger_evaluations ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (max_evaluations,),
            ) as cur:
                state.evaluations = [
                    TriggerEvaluation.from_dict(dict(r)) for r in await cur.fetchall()
                ]
            async with db.execute(
                "SELECT * FROM automation_events ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (max_events,),
            ) as cur:
                state.events = [self._row_to_event(r) for r in await cur.fetchall()]
            return state
        except Exception as e:
            raise StorageError(f"Failed to load state from {self._db_path}: {e}")

    async def get_setting(self, key: str) -> str | None:
        db = await self._ensure_db()
        try:
            async with db.execute("SELECT value FROM settings WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None
        except Exception as e:
            raise StorageError(f"Failed to get setting '{key}': {e}")

    async def set_setting(self, key: str, value: str) -> None:
        await self._write(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, time.time()),
            f"setting {key}",
        )

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_action(row: aiosqlite.Row) -> Action:
        d = dict(row)
        d["schedule"] = json.loads(d["schedule"])
        d["enabled"] = bool(d["enabled"])
        return Action.from_dict(d)

    @staticmethod
    def _row_to_trigger(row: aiosqlite.Row) -> Trigger:
        d = dict(row)
        d["schedule"] = json.loads(d["schedule"])
        d["action_ids"] = json.loads(d["action_ids"])
        d["enabled"] = bool(d["enabled"])
        return Trigger.from_dict(d)

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> AutomationEvent:
        d = dict(row)
        payload = json.loads(d["payload"])
        return AutomationEvent(
            kind=d["kind"], payload=payload, created_at=d["created_at"], id=d["id"]
        )
