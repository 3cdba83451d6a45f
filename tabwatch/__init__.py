"""
Tabwatch — capture messages from web app tabs and plan automations.

Public API:
    from tabwatch import Kernel, AutomationService, parse_schedule
"""

__version__ = "0.1.0"

# Core
from tabwatch.core.kernel import Kernel
from tabwatch.core.config import TabwatchConfig
from tabwatch.core.events import Event, EventType

# Automation
from tabwatch.automation.service import AutomationService
from tabwatch.automation.matching import evaluate_match
from tabwatch.automation.models import Action, Message, Trigger

# Schedules
from tabwatch.scheduler.schedule import parse_schedule, schedule_status_at

# Capture
from tabwatch.capture.orchestrator import CaptureOrchestrator, CaptureReport

__all__ = [
    # Core
    "Kernel",
    "TabwatchConfig",
    "Event",
    "EventType",
    # Automation
    "AutomationService",
    "evaluate_match",
    "Action",
    "Message",
    "Trigger",
    # Schedules
    "parse_schedule",
    "schedule_status_at",
    # Capture
    "CaptureOrchestrator",
    "CaptureReport",
]
