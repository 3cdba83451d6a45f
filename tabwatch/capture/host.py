"""
Browser tab host interface — what capture needs from the embedding browser.

The host owns tab creation and teardown. Capture only asks a tab for its
address, whether it is still loading, and its reachable frames, then runs
the extraction script inside each frame.

Implementations:
    PlaywrightTabHost — pages in a persistent Playwright context
    (tests use small fakes)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Frame(ABC):
    """One browsing context inside a tab (main frame or subframe)."""

    @property
    @abstractmethod
    def routing_id(self) -> int | str | None:
        """Stable per-frame identifier; None when the host has none."""
        ...

    @property
    @abstractmethod
    def url(self) -> str: ...

    @property
    def is_main(self) -> bool:
        return False

    @abstractmethod
    async def execute_script(self, source: str, arg: Any = None) -> Any:
        """
        Evaluate ``source`` (a function expression) with ``arg`` in the
        frame's page context and return its JSON-serialisable result.
        """
        ...


class TabContent(ABC):
    """The navigable content of one tab."""

    @property
    @abstractmethod
    def url(self) -> str: ...

    @abstractmethod
    async def is_loading(self) -> bool: ...

    @abstractmethod
    def frames(self) -> list[Frame]:
        """Main frame first, then every subframe in the tree."""
        ...


class TabHost(ABC):
    @abstractmethod
    def get_tab(self, tab_id: str) -> TabContent | None:
        """Content handle for a tab, or None if the tab is not open."""
        ...
