"""
CaptureOrchestrator — run the extractor across a tab's frames and ingest
first-seen messages.

One capture of a tab:

1. Refused (ok=False with a reason) when a capture of the same tab is
   already in flight, the tab is not open, its content is still loading,
   or its address is not http(s).
2. Frames are enumerated, deduplicated by routing id and filtered by
   URL (see frames.py), capped at ``max_frames``.
3. The extraction script runs in every frame concurrently; results are
   processed in enumeration order. A frame that throws is recorded in
   the report and does not affect its siblings.
4. Each candidate is keyed "<tab>|<source>|<normalised content>"; the
   source of a subframe candidate is suffixed with the frame's hostname.
   Only keys new to the process-wide DedupKeyCache are ingested. A failed
   ingest is recorded in the report and its key forgotten.

Usage:
    orchestrator = CaptureOrchestrator(host, ingest=service.run_pipeline)
    report = await orchestrator.capture_visible_messages("slack")
    print(report.inserted_count, report.duplicate_count)
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from tabwatch.capture.extractor import normalize_text
from tabwatch.capture.frames import DEFAULT_MAX_FRAMES, collect_capture_frame_targets
from tabwatch.capture.host import Frame, TabHost
from tabwatch.capture.rules import MAX_BODY_CHARS, MAX_TITLE_CHARS, RuleTable, to_payload
from tabwatch.capture.script import load_extractor_script
from tabwatch.core.bus import EventBus
from tabwatch.core.errors import CaptureError
from tabwatch.core.events import Event, EventType

logger = logging.getLogger(__name__)

Ingest = Callable[[str, dict[str, Any]], Any]

DEFAULT_DEDUP_CAPACITY = 20000


class DedupKeyCache:
    """Bounded set of seen keys; the oldest key is evicted first."""

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY) -> None:
        self._capacity = capacity
        self._keys: set[str] = set()
        self._order: deque[str] = deque()

    def add(self, key: str) -> bool:
        """True if the key was new (and is now remembered)."""
        if key in self._keys:
            return False
        self._keys.add(key)
        self._order.append(key)
        while len(self._order) > self._capacity:
            self._keys.discard(self._order.popleft())
        return True

    def discard(self, key: str) -> None:
        if key in self._keys:
            self._keys.discard(key)
            self._order.remove(key)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


@dataclass
class FrameReport:
    routing_id: int | str | None
    url: str
    host: str = ""
    ok: bool = True
    candidate_count: int = 0
    inserted_count: int = 0
    duplicate_count: int = 0
    error: str | None = None


@dataclass
class CaptureReport:
    tab_id: str
    ok: bool
    reason: str = ""
    frame_count: int = 0
    candidate_count: int = 0
    inserted_count: int = 0
    duplicate_count: int = 0
    frame_reports: list[FrameReport] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def content_key(title: str, body: str) -> str:
    return f"{normalize_text(title).lower()}|{normalize_text(body).lower()}"


def is_capturable_url(url: str | None) -> bool:
    url = (url or "").strip().lower()
    return url.startswith(("http://", "https://"))


class CaptureOrchestrator:
    def __init__(
        self,
        host: TabHost,
        ingest: Ingest,
        dedup: DedupKeyCache | None = None,
        max_frames: int = DEFAULT_MAX_FRAMES,
        rules: RuleTable | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._host = host
        self._ingest = ingest
        self.dedup = dedup or DedupKeyCache()
        self._max_frames = max_frames
        self._payload = to_payload(rules)
        self._bus = bus
        self._in_flight: set[str] = set()

    def in_flight(self, tab_id: str) -> bool:
        return tab_id in self._in_flight

    async def capture_visible_messages(self, tab_id: str) -> CaptureReport:
        if tab_id in self._in_flight:
            return CaptureReport(tab_id=tab_id, ok=False, reason="capture already in flight")
        tab = self._host.get_tab(tab_id)
        if tab is None:
            return CaptureReport(tab_id=tab_id, ok=False, reason="tab not open")

        self._in_flight.add(tab_id)
        try:
            if await tab.is_loading():
                return CaptureReport(tab_id=tab_id, ok=False, reason="tab is loading")
            if not is_capturable_url(tab.url):
                return CaptureReport(
                    tab_id=tab_id, ok=False, reason=f"address not capturable: {tab.url!r}"
                )
            frames = collect_capture_frame_targets(tab.frames(), self._max_frames)
            results = await asyncio.gather(
                *(self._extract(frame) for frame in frames), return_exceptions=True
            )
            report = CaptureReport(tab_id=tab_id, ok=True, frame_count=len(frames))
            for frame, result in zip(frames, results):
                self._process_frame(report, frame, result)
        finally:
            self._in_flight.discard(tab_id)

        if report.inserted_count:
            logger.info(
                f"Captured {report.inserted_count} new message(s) from {tab_id} "
                f"({report.duplicate_count} duplicate, {report.frame_count} frame(s))"
            )
        if self._bus is not None:
            self._bus.emit_nowait(
                Event(
                    type=EventType.CAPTURE_COMPLETE,
                    source="capture",
                    data={k: v for k, v in report.to_dict().items() if k != "frame_reports"},
                )
            )
        return report

    async def _extract(self, frame: Frame) -> dict[str, Any]:
        result = await frame.execute_script(load_extractor_script(), self._payload)
        if not isinstance(result, dict):
            raise CaptureError(
                f"Unexpected extractor result: {type(result).__name__}", frame=frame.url
            )
        return result

    def _process_frame(self, report: CaptureReport, frame: Frame, result: Any) -> None:
        frame_report = FrameReport(routing_id=frame.routing_id, url=frame.url)
        report.frame_reports.append(frame_report)

        if isinstance(result, BaseException):
            frame_report.ok = False
            frame_report.error = f"{type(result).__name__}: {result}"
            report.errors.append(
                {"routing_id": frame.routing_id, "url": frame.url, "error": frame_report.error}
            )
            logger.debug(f"Capture of frame {frame.url or '<blank>'} failed: {frame_report.error}")
            return

        frame_report.host = str(result.get("host") or "").lower()
        for item in result.get("items") or []:
            if not isinstance(item, dict):
                continue
            title = normalize_text(item.get("title"))[:MAX_TITLE_CHARS]
            body = normalize_text(item.get("body"))[:MAX_BODY_CHARS]
            if not title and not body:
                continue
            source = str(item.get("source") or "dom-generic")
            if not frame.is_main and frame_report.host:
                source = f"{source}:{frame_report.host}"

            frame_report.candidate_count += 1
            report.candidate_count += 1
            key = f"{report.tab_id}|{source}|{content_key(title, body)}"
            if not self.dedup.add(key):
                frame_report.duplicate_count += 1
                report.duplicate_count += 1
                continue
            try:
                self._ingest(report.tab_id, {"title": title, "body": body, "source": source})
            except Exception as e:
                self.dedup.discard(key)
                error = f"{type(e).__name__}: {e}"
                report.errors.append(
                    {"routing_id": frame.routing_id, "url": frame.url, "error": f"ingest failed: {error}"}
                )
                logger.warning(f"Ingest of captured message from {report.tab_id} failed: {error}")
                continue
            frame_report.inserted_count += 1
            report.inserted_count += 1
