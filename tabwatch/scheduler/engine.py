"""
CaptureEngine — the background asyncio task that polls tabs for messages.

Design:
- Every ``poll_interval`` seconds, captures each configured tab in turn
- A tab whose previous capture is still running is skipped by the
  orchestrator's single-flight guard (no queueing)
- Tick errors are logged and never stop the loop
- No catch-up: a slow tick simply delays the next one
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from tabwatch.capture.orchestrator import CaptureOrchestrator, CaptureReport

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0  # seconds between capture rounds


class CaptureEngine:
    def __init__(
        self,
        orchestrator: CaptureOrchestrator,
        tab_ids: Iterable[str],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._orchestrator = orchestrator
        self._tab_ids = list(tab_ids)
        self._poll_interval = poll_interval
        self._task: asyncio.Task | None = None
        self._running = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="capture-engine")
        logger.info(
            f"CaptureEngine started ({len(self._tab_ids)} tab(s), every {self._poll_interval}s)"
        )

    async def stop(self) -> None:
        """Gracefully stop the background loop."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("CaptureEngine stopped")

    # ── Internal loop ─────────────────────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.warning(f"Capture tick error (non-fatal): {e}")
            await asyncio.sleep(self._poll_interval)

    async def tick(self) -> list[CaptureReport]:
        """Capture every tab once."""
        self.ticks += 1
        reports = []
        for tab_id in self._tab_ids:
            try:
                report = await self._orchestrator.capture_visible_messages(tab_id)
            except Exception as e:
                logger.warning(f"Capture of {tab_id} failed: {e}")
                continue
            if not report.ok:
                logger.debug(f"Capture of {tab_id} skipped: {report.reason}")
            reports.append(report)
        return reports
