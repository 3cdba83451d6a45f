"""DOM capture: frame enumeration, in-page extraction and deduplicated ingest."""

from tabwatch.capture.frames import collect_capture_frame_targets, is_allowed_capture_frame_url
from tabwatch.capture.host import Frame, TabContent, TabHost
from tabwatch.capture.orchestrator import CaptureOrchestrator, CaptureReport, DedupKeyCache

__all__ = [
    "CaptureOrchestrator",
    "CaptureReport",
    "DedupKeyCache",
    "Frame",
    "TabContent",
    "TabHost",
    "collect_capture_frame_targets",
    "is_allowed_capture_frame_url",
]
