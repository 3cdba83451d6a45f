"""
Schedule DSL — parse rule schedule text and evaluate it at a point in time.

Grammar (case-insensitive, whitespace-trimmed):
    ""  | "always"                     → always
    "once <datetime>"                  → once
    "daily HH:MM"                      → daily
    "weekdays HH:MM"                   → weekdays (Mon-Fri)
    "weekly <dayname> HH:MM"           → weekly
    "between <datetime> and <datetime>" → range (start <= end)

Anything else becomes an "unparsed" schedule that keeps the original
text. parse_schedule() never raises; schedule_status_at() never raises
either — an unparsed schedule or a bad timestamp evaluates to
active=None ("unknown").

Usage:
    schedule = parse_schedule("weekdays 09:00")
    status = schedule_status_at(schedule, time.time())
    if status.active:
        ...

Schedules serialise to plain dicts so they store cleanly as JSON.
Daily/weekly rules compare *local* wall-clock hour and minute.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass
from typing import Any

ONCE_TOLERANCE_SECONDS = 60.0

SUPPORTED_GRAMMAR_NOTE = (
    "Unparsed schedule text. Supported: always, once <datetime>, daily HH:MM, "
    "weekdays HH:MM, weekly <day> HH:MM, between <start> and <end>"
)

# Sunday-first, matching the stored day_of_week values (0-6)
DAY_TO_INDEX = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_ONCE_RE = re.compile(r"^once\s+(.+)$", re.IGNORECASE)
_DAILY_RE = re.compile(r"^daily\s+(\d{1,2}:\d{2})$", re.IGNORECASE)
_WEEKDAYS_RE = re.compile(r"^weekdays\s+(\d{1,2}:\d{2})$", re.IGNORECASE)
_WEEKLY_RE = re.compile(r"^weekly\s+([a-z]+)\s+(\d{1,2}:\d{2})$", re.IGNORECASE)
_RANGE_RE = re.compile(r"^between\s+(.+)\s+and\s+(.+)$", re.IGNORECASE)

# Accepted in addition to ISO 8601 (datetime.fromisoformat)
_DATETIME_FORMATS = (
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d %b %Y %H:%M",
    "%b %d %Y %H:%M",
    "%b %d, %Y %H:%M",
)


class ScheduleKind:
    ALWAYS = "always"
    ONCE = "once"
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"
    RANGE = "range"
    UNPARSED = "unparsed"


@dataclass(frozen=True)
class Schedule:
    """
    Parsed schedule descriptor.

    Only the fields relevant to ``kind`` are set:
        once      → at
        daily     → hour, minute
        weekdays  → hour, minute
        weekly    → day_of_week (0=Sunday), hour, minute
        range     → start, end
        unparsed  → note
    Timestamps are unix seconds (float).
    """

    kind: str
    raw: str
    parseable: bool
    at: float | None = None
    hour: int | None = None
    minute: int | None = None
    day_of_week: int | None = None
    start: float | None = None
    end: float | None = None
    note: str | None = None

    @property
    def description(self) -> str:
        """Human-readable description, e.g. 'weekdays 09:00'."""
        if self.kind == ScheduleKind.ALWAYS:
            return "always active"
        if self.kind == ScheduleKind.ONCE:
            return f"active within 1 minute of {_iso(self.at)}"
        if self.kind == ScheduleKind.DAILY:
            return f"daily {_hhmm(self.hour, self.minute)}"
        if self.kind == ScheduleKind.WEEKDAYS:
            return f"weekdays {_hhmm(self.hour, self.minute)}"
        if self.kind == ScheduleKind.WEEKLY:
            return f"weekly day={self.day_of_week} at {_hhmm(self.hour, self.minute)}"
        if self.kind == ScheduleKind.RANGE:
            return f"between {_iso(self.start)} and {_iso(self.end)}"
        return self.note or "schedule could not be parsed"

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> Schedule:
        """Rebuild a stored schedule; re-parses from raw if the dict is unusable."""
        if not d:
            return parse_schedule("")
        try:
            return cls(
                kind=d["kind"],
                raw=d.get("raw", ""),
                parseable=bool(d.get("parseable", False)),
                at=d.get("at"),
                hour=d.get("hour"),
                minute=d.get("minute"),
                day_of_week=d.get("day_of_week"),
                start=d.get("start"),
                end=d.get("end"),
                note=d.get("note"),
            )
        except KeyError:
            return parse_schedule(str(d.get("raw", "")))


@dataclass(frozen=True)
class ScheduleStatus:
    """active is True/False, or None when the schedule state is unknown."""

    active: bool | None
    reason: str


# ━━━ Parsing ━━━


def parse_schedule(text: str | None) -> Schedule:
    """
    Parse schedule text into a Schedule. Total: never raises.

    A keyword whose argument does not parse (bad time, bad date) falls
    through to the remaining alternatives and finally to "unparsed".
    """
    text = (text or "").strip()
    if not text or text.lower() == "always":
        return Schedule(kind=ScheduleKind.ALWAYS, raw=text or "always", parseable=True)

    m = _ONCE_RE.match(text)
    if m:
        at = parse_datetime(m.group(1))
        if at is not None:
            return Schedule(kind=ScheduleKind.ONCE, raw=text, parseable=True, at=at)

    m = _DAILY_RE.match(text)
    if m:
        tm = parse_time_token(m.group(1))
        if tm:
            return Schedule(
                kind=ScheduleKind.DAILY, raw=text, parseable=True, hour=tm[0], minute=tm[1]
            )

    m = _WEEKDAYS_RE.match(text)
    if m:
        tm = parse_time_token(m.group(1))
        if tm:
            return Schedule(
                kind=ScheduleKind.WEEKDAYS, raw=text, parseable=True, hour=tm[0], minute=tm[1]
            )

    m = _WEEKLY_RE.match(text)
    if m:
        day = m.group(1).lower()
        tm = parse_time_token(m.group(2))
        if day in DAY_TO_INDEX and tm:
            return Schedule(
                kind=ScheduleKind.WEEKLY,
                raw=text,
                parseable=True,
                day_of_week=DAY_TO_INDEX[day],
                hour=tm[0],
                minute=tm[1],
            )

    m = _RANGE_RE.match(text)
    if m:
        start = parse_datetime(m.group(1))
        end = parse_datetime(m.group(2))
        if start is not None and end is not None and start <= end:
            return Schedule(
                kind=ScheduleKind.RANGE, raw=text, parseable=True, start=start, end=end
            )

    return Schedule(
        kind=ScheduleKind.UNPARSED, raw=text, parseable=False, note=SUPPORTED_GRAMMAR_NOTE
    )


def parse_time_token(token: str) -> tuple[int, int] | None:
    """'9:05' → (9, 5); None when out of range or malformed."""
    m = _TIME_RE.match(token.strip())
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def parse_datetime(text: str) -> float | None:
    """
    Parse a user-written datetime into a unix timestamp.

    ISO 8601 first ("2026-10-13T09:00", "2026-10-13 09:00:00Z", ...), then a
    handful of common layouts. Naive values are local time.
    """
    text = text.strip()
    if not text:
        return None
    iso = text[:-1] + "+00:00" if text[-1] in "zZ" else text
    try:
        return datetime.datetime.fromisoformat(iso).timestamp()
    except (ValueError, OverflowError, OSError):
        pass
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.datetime.strptime(text, fmt).timestamp()
        except (ValueError, OverflowError, OSError):
            continue
    return None


# ━━━ Evaluation ━━━


def to_timestamp(at: Any) -> float | None:
    """Coerce float/int/datetime/ISO string to unix seconds; None if invalid."""
    if isinstance(at, bool) or at is None:
        return None
    if isinstance(at, (int, float)):
        ts = float(at)
        return ts if ts == ts and abs(ts) != float("inf") else None
    if isinstance(at, datetime.datetime):
        return at.timestamp()
    if isinstance(at, str):
        return parse_datetime(at)
    return None


def schedule_status_at(schedule: Schedule | None, at: Any) -> ScheduleStatus:
    """
    Evaluate a schedule at a moment in time.

    ``at`` may be a unix timestamp, a datetime or an ISO string.
    Minute-granular rules match exactly on local hour and minute.
    """
    ts = to_timestamp(at)
    if schedule is None or ts is None:
        return ScheduleStatus(active=None, reason="invalid timestamp")

    kind = schedule.kind
    if kind == ScheduleKind.ALWAYS:
        return ScheduleStatus(active=True, reason=schedule.description)
    if not schedule.parseable:
        return ScheduleStatus(active=None, reason=schedule.description)

    try:
        local = datetime.datetime.fromtimestamp(ts)
    except (OverflowError, OSError, ValueError):
        return ScheduleStatus(active=None, reason="invalid timestamp")

    if kind == ScheduleKind.ONCE:
        active = abs(ts - schedule.at) <= ONCE_TOLERANCE_SECONDS
        return ScheduleStatus(active=active, reason=schedule.description)

    time_match = local.hour == schedule.hour and local.minute == schedule.minute
    day_of_week = (local.weekday() + 1) % 7  # Python: Monday=0 → Sunday=0

    if kind == ScheduleKind.DAILY:
        return ScheduleStatus(active=time_match, reason=schedule.description)
    if kind == ScheduleKind.WEEKDAYS:
        return ScheduleStatus(
            active=time_match and 1 <= day_of_week <= 5, reason=schedule.description
        )
    if kind == ScheduleKind.WEEKLY:
        return ScheduleStatus(
            active=time_match and day_of_week == schedule.day_of_week,
            reason=schedule.description,
        )
    if kind == ScheduleKind.RANGE:
        return ScheduleStatus(
            active=schedule.start <= ts <= schedule.end, reason=schedule.description
        )
    return ScheduleStatus(active=None, reason="unknown schedule type")


# ━━━ Helpers ━━━


def _hhmm(hour: int | None, minute: int | None) -> str:
    return f"{hour or 0:02d}:{minute or 0:02d}"


def _iso(ts: float | None) -> str:
    if ts is None:
        return "?"
    return datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc).isoformat()
