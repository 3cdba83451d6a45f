"""
Tabwatch Kernel — composes the running system.

Wires config, event bus, storage, the automation service and (when a tab
host is supplied) the capture orchestrator and its poll loop. Everything
else talks to the kernel rather than constructing pieces itself.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from tabwatch.automation.service import AutomationService
from tabwatch.capture.host import TabHost
from tabwatch.capture.orchestrator import CaptureOrchestrator, DedupKeyCache
from tabwatch.capture.rules import ExtractionLimits, RuleTable
from tabwatch.core.bus import EventBus, EventHandler, MiddlewareFunc
from tabwatch.core.config import TabwatchConfig
from tabwatch.core.events import Event, EventType
from tabwatch.llm.base import CodeGenerator
from tabwatch.llm.http import HttpCodeGenerator
from tabwatch.scheduler.engine import CaptureEngine
from tabwatch.store.base import StorageProvider
from tabwatch.store.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


class Kernel:
    """
    Usage:
        kernel = Kernel(config, host=PlaywrightTabHost(config, bus))
        kernel.on("automation:action-planned", my_handler)
        await kernel.start()
        ...
        await kernel.stop()

    Without a host the kernel still runs the automation service (CLI
    management commands, simulation); capture is simply absent.
    """

    def __init__(
        self,
        config: TabwatchConfig | None = None,
        storage: StorageProvider | None = None,
        host: TabHost | None = None,
        codegen: CodeGenerator | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or TabwatchConfig.load()
        self.bus = bus or EventBus()
        self.service = AutomationService(
            self.config,
            storage or SQLiteStorage(self.config.get_db_path()),
            bus=self.bus,
            codegen=codegen or HttpCodeGenerator(self.config.codegen),
            clock=clock,
        )
        self.orchestrator: CaptureOrchestrator | None = None
        self.engine: CaptureEngine | None = None
        if host is not None:
            self.attach_host(host)
        self._running = False

    def attach_host(self, host: TabHost) -> None:
        capture = self.config.capture
        self.orchestrator = CaptureOrchestrator(
            host,
            ingest=self.service.run_pipeline,
            dedup=DedupKeyCache(capture.dedup_capacity),
            max_frames=capture.max_frames,
            rules=RuleTable(limits=ExtractionLimits(max_items=capture.max_items)),
            bus=self.bus,
        )
        self.engine = CaptureEngine(
            self.orchestrator, self.config.tab_ids(), poll_interval=capture.poll_interval
        )

    # ━━━ Event Bus Shortcuts ━━━

    def on(self, event_type: str, handler: EventHandler) -> None:
        self.bus.on(event_type, handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        self.bus.off(event_type, handler)

    def use(self, middleware: MiddlewareFunc) -> None:
        self.bus.use(middleware)

    async def emit(self, event: Event) -> Event:
        return await self.bus.emit(event)

    # ━━━ Lifecycle ━━━

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Hydrate state, announce start, then begin capture polling."""
        if self._running:
            return
        self._running = True
        logger.info("Tabwatch kernel starting")
        await self.service.hydrate()
        await self.emit(Event(type=EventType.SYSTEM_START, source="kernel"))
        if self.engine is not None and self.config.capture.enabled:
            await self.engine.start()

    async def stop(self) -> None:
        """Stop polling, deliver outstanding events, drain writes, close storage."""
        if not self._running:
            return
        self._running = False
        logger.info("Tabwatch kernel stopping")
        if self.engine is not None:
            await self.engine.stop()
        await self.emit(Event(type=EventType.SYSTEM_STOP, source="kernel"))
        await self.bus.drain()
        await self.service.shutdown()
