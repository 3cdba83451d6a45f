"""
Playwright browser host — one page per configured tab in a persistent
Chromium profile (logins survive restarts).

Observes each page and broadcasts "tab:state" events on the bus for
navigation-started, navigation-failed, content-loaded,
navigation-finished, navigated and title-changed. A tab stops counting as
loading once its main frame has parsed its document or its navigation
request failed.

Page notifications (``new Notification(title, {body})``) are forwarded
to ``on_notification(tab_id, title, body)``.

Requires the ``browser`` extra:
    pip install tabwatch[browser] && playwright install chromium
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from tabwatch.capture.host import Frame, TabContent, TabHost
from tabwatch.capture.targets import resolve_target_url
from tabwatch.core.bus import EventBus
from tabwatch.core.config import TabwatchConfig
from tabwatch.core.events import Event, EventType

logger = logging.getLogger(__name__)

try:
    from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
    from playwright.async_api import Frame as PlaywrightFrameHandle

    PLAYWRIGHT_AVAILABLE = True
except ImportError:
    PLAYWRIGHT_AVAILABLE = False
    async_playwright = None
    BrowserContext = None
    Page = None
    Playwright = None
    PlaywrightFrameHandle = None

NotificationHandler = Callable[[str, str, str], Any]

NOTIFY_BINDING = "__tabwatchNotify"

# Wraps window.Notification so every notification a page shows is also
# reported through the exposed binding.
NOTIFICATION_SHIM = """
(() => {
  const Native = window.Notification;
  if (!Native || Native.__tabwatch) return;
  const Wrapped = function (title, options) {
    try {
      window.%(binding)s(String(title || ""), String((options && options.body) || ""));
    } catch (_error) {}
    return new Native(title, options);
  };
  Wrapped.prototype = Native.prototype;
  Wrapped.requestPermission = Native.requestPermission.bind(Native);
  Object.defineProperty(Wrapped, "permission", { get: () => Native.permission });
  Wrapped.__tabwatch = true;
  window.Notification = Wrapped;
})();
""" % {"binding": NOTIFY_BINDING}


class PlaywrightFrame(Frame):
    def __init__(self, handle: Any, is_main: bool = False) -> None:
        self._handle = handle
        self._is_main = is_main

    @property
    def routing_id(self) -> int:
        # Playwright keeps one Frame object per live frame
        return id(self._handle)

    @property
    def url(self) -> str:
        return self._handle.url or ""

    @property
    def is_main(self) -> bool:
        return self._is_main

    async def execute_script(self, source: str, arg: Any = None) -> Any:
        return await self._handle.evaluate(source, arg)


class PlaywrightTab(TabContent):
    def __init__(self, tab_id: str, page: Any) -> None:
        self.tab_id = tab_id
        self.page = page
        self.loading = True
        self.title = ""

    @property
    def url(self) -> str:
        return self.page.url or ""

    async def is_loading(self) -> bool:
        return self.loading

    def frames(self) -> list[Frame]:
        main = self.page.main_frame
        result: list[Frame] = [PlaywrightFrame(main, is_main=True)]
        result.extend(PlaywrightFrame(f) for f in self.page.frames if f is not main)
        return result

    def state(self) -> dict[str, Any]:
        return {"tab_id": self.tab_id, "title": self.title, "url": self.url, "loading": self.loading}


class PlaywrightTabHost(TabHost):
    """
    Usage:
        host = PlaywrightTabHost(config, bus, on_notification=service.handle_notification)
        await host.start()
        ...
        await host.stop()
    """

    def __init__(
        self,
        config: TabwatchConfig,
        bus: EventBus | None = None,
        on_notification: NotificationHandler | None = None,
    ) -> None:
        if not PLAYWRIGHT_AVAILABLE:
            raise ImportError(
                "Playwright is not installed. "
                "Install with: pip install tabwatch[browser] && playwright install chromium"
            )
        self._config = config
        self._bus = bus
        self._on_notification = on_notification
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._tabs: dict[str, PlaywrightTab] = {}

    async def start(self) -> None:
        if self._context is not None:
            return
        user_data_dir = Path(self._config.browser.user_data_dir).expanduser()
        user_data_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Starting Chromium for tab host...")
        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(user_data_dir),
            headless=self._config.browser.headless,
        )
        await self._context.expose_binding(NOTIFY_BINDING, self._notification_binding)
        await self._context.add_init_script(NOTIFICATION_SHIM)

        for tab in self._config.tabs:
            page = await self._context.new_page()
            entry = PlaywrightTab(tab.id, page)
            self._tabs[tab.id] = entry
            self._observe(entry)
            target = resolve_target_url(tab.id, tab.url) or tab.url
            try:
                await page.goto(target, wait_until="domcontentloaded")
            except Exception as e:
                logger.warning(f"Initial navigation of {tab.id} to {target} failed: {e}")
        logger.info(f"Tab host started with {len(self._tabs)} tab(s)")

    async def stop(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._tabs.clear()
        logger.info("Tab host stopped")

    def get_tab(self, tab_id: str) -> PlaywrightTab | None:
        return self._tabs.get(tab_id)

    def tab_for_page(self, page: Any) -> PlaywrightTab | None:
        for entry in self._tabs.values():
            if entry.page is page:
                return entry
        return None

    # ── Observation ───────────────────────────────────────────────────────────

    def _observe(self, entry: PlaywrightTab) -> None:
        page = entry.page

        def on_request(request: Any) -> None:
            if request.is_navigation_request() and request.frame is page.main_frame:
                entry.loading = True
                self._emit_state(entry, "navigation-started")

        def on_request_failed(request: Any) -> None:
            if request.is_navigation_request() and request.frame is page.main_frame:
                entry.loading = False
                self._emit_state(entry, "navigation-failed")

        def on_dom_ready(_page: Any) -> None:
            if entry.loading:
                entry.loading = False
                self._emit_state(entry, "content-loaded")

        def on_navigated(frame: Any) -> None:
            if frame is page.main_frame:
                self._emit_state(entry, "navigated")

        async def on_load(_page: Any) -> None:
            entry.loading = False
            self._emit_state(entry, "navigation-finished")
            try:
                title = await page.title()
            except Exception as e:
                logger.debug(f"Reading title of {entry.tab_id} failed: {e}")
                return
            if title != entry.title:
                entry.title = title
                self._emit_state(entry, "title-changed")

        page.on("request", on_request)
        page.on("requestfailed", on_request_failed)
        page.on("framenavigated", on_navigated)
        page.on("domcontentloaded", on_dom_ready)
        page.on("load", on_load)

    def _emit_state(self, entry: PlaywrightTab, reason: str) -> None:
        if self._bus is None:
            return
        self._bus.emit_nowait(
            Event(type=EventType.TAB_STATE, source="browser", data={**entry.state(), "reason": reason})
        )

    def _notification_binding(self, source: Any, title: str, body: str) -> None:
        entry = self.tab_for_page(source.get("page") if isinstance(source, dict) else None)
        if entry is None or self._on_notification is None:
            return
        logger.debug(f"Notification from {entry.tab_id}: {title!r}")
        self._on_notification(entry.tab_id, title, body)
