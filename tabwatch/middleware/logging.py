"""
Logging — process log setup and the JSON-lines event journal.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from tabwatch.core.bus import MiddlewareNext
from tabwatch.core.events import Event


def default_log_dir() -> Path:
    return Path.home() / ".tabwatch" / "logs"


def setup_logging(
    log_dir: Path | None = None,
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
) -> logging.Logger:
    """
    Configure the "tabwatch" logger.

    Console gets "[LEVEL] message"; the dated file under ``log_dir``
    (default ~/.tabwatch/logs) gets timestamps and logger names.
    """
    log_dir = (log_dir or default_log_dir()).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("tabwatch")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    log_file = log_dir / f"tabwatch_{datetime.now().strftime('%Y%m%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(file_handler)

    logger.info(f"Logging initialized. File: {log_file}")
    return logger


class EventLogger:
    """
    Journals bus events as JSON lines (events_YYYYMMDD.jsonl).

    Usage:
        event_logger = EventLogger(log_dir=Path("~/.tabwatch/logs"))
        bus.use(event_logger.middleware)

    ``prefixes`` limits the journal to matching event types (None = all).
    """

    def __init__(
        self,
        log_dir: Path | None = None,
        log_events: bool = True,
        prefixes: tuple[str, ...] | None = None,
    ) -> None:
        self._log_dir = (log_dir or default_log_dir()).expanduser()
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._log_events = log_events
        self._prefixes = prefixes
        self._logger = logging.getLogger("tabwatch.events")
        self.written = 0

    @property
    def events_file(self) -> Path:
        # Re-evaluated per write so a long-running watcher rolls over at midnight
        return self._log_dir / f"events_{datetime.now().strftime('%Y%m%d')}.jsonl"

    async def middleware(self, event: Event, next_handler: MiddlewareNext) -> Event:
        self._logger.debug(f"[{event.type}] source={event.source}")
        if self._log_events and self._wanted(event.type):
            self._write_event(event)
        return await next_handler(event)

    def _wanted(self, event_type: str) -> bool:
        if self._prefixes is None:
            return True
        return event_type.startswith(self._prefixes)

    def _write_event(self, event: Event) -> None:
        try:
            record = {
                "timestamp": datetime.fromtimestamp(event.timestamp).isoformat(),
                "id": event.id,
                "type": event.type,
                "source": event.source,
                "data": self._safe_serialize(event.data),
                "parent_id": event.parent_id,
            }
            with open(self.events_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")
            self.written += 1
        except OSError as e:
            self._logger.warning(f"Failed to write event log: {e}")

    @staticmethod
    def _safe_serialize(data: dict[str, Any]) -> dict[str, Any]:
        """Values json can't encode are stored as their str()."""
        result = {}
        for key, value in data.items():
            try:
                json.dumps(value)
                result[key] = value
            except (TypeError, ValueError):
                result[key] = str(value)
        return result
