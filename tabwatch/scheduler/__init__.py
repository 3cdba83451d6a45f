"""Schedule DSL and the capture poll loop."""

from tabwatch.scheduler.schedule import (
    Schedule,
    ScheduleKind,
    ScheduleStatus,
    parse_schedule,
    schedule_status_at,
)

__all__ = [
    "Schedule",
    "ScheduleKind",
    "ScheduleStatus",
    "parse_schedule",
    "schedule_status_at",
]
