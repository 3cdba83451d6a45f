"""
Message extraction over an abstract DOM.

This is the Python rendition of assets/extractor.js. Both walk the same
RuleTable the same way:

1. Pick the site rule for the document's hostname.
2. Discover every queryable root breadth-first: the document, open
   shadow roots (when the rule pierces shadow DOM) and same-origin iframe
   documents. Cross-origin iframes expose no document and are skipped.
3. For each selector group, across every root, take visible containers
   and read title/body/timestamp from their sub-selectors.
4. Key each item by a stable id attribute, else by
   author + timestamp + body prefix; drop repeats within the pass. An element taken
   by one group is not read again by a later group or the generic pass.
5. If the site rule found fewer than GENERIC_FALLBACK_THRESHOLD items
   (or there is no site rule), run the generic rule as well.

Items are capped at ``max_items``; titles and bodies are whitespace
normalised and truncated.

The Python side exists so the traversal can be exercised against a fake
DOM tree; the browser runs the JavaScript asset.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Mapping

from tabwatch.capture.rules import RuleTable, SelectorGroup, SiteRule

logger = logging.getLogger(__name__)

MIN_VISIBLE_PX = 2
VIEWPORT_TOLERANCE_PX = 400
MAX_ROOTS = 256

_WS_RE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    return _WS_RE.sub(" ", text or "").strip()


# ━━━ DOM capability ━━━


class DomElement(ABC):
    @property
    @abstractmethod
    def tag(self) -> str: ...

    @abstractmethod
    def query_all(self, selector: str) -> list[DomElement]: ...

    @abstractmethod
    def get_attribute(self, name: str) -> str | None: ...

    @property
    @abstractmethod
    def text(self) -> str:
        """Rendered text (innerText)."""
        ...

    @abstractmethod
    def computed_style(self) -> Mapping[str, str]:
        """At least display, visibility and opacity."""
        ...

    @abstractmethod
    def bounding_rect(self) -> tuple[float, float, float, float]:
        """(x, y, width, height) relative to the viewport."""
        ...

    @property
    def shadow_root(self) -> DomRoot | None:
        """Open shadow root, if any."""
        return None

    @property
    def content_document(self) -> DomRoot | None:
        """Iframe document; None when absent or cross-origin."""
        return None


class DomRoot(ABC):
    """Anything that can be queried: a document or a shadow root."""

    @abstractmethod
    def query_all(self, selector: str) -> list[DomElement]: ...


class DomDocument(DomRoot):
    @property
    @abstractmethod
    def url(self) -> str: ...

    @property
    @abstractmethod
    def host(self) -> str: ...

    @property
    @abstractmethod
    def viewport(self) -> tuple[float, float]:
        """(width, height)"""
        ...


# ━━━ Traversal ━━━


def discover_roots(
    document: DomRoot, pierce_shadow: bool = True, include_iframes: bool = True
) -> list[DomRoot]:
    """Breadth-first list of queryable roots, starting with ``document``."""
    roots: list[DomRoot] = [document]
    seen = {id(document)}
    queue = deque([document])
    while queue and len(roots) < MAX_ROOTS:
        root = queue.popleft()
        for element in root.query_all("*"):
            found: list[DomRoot] = []
            if pierce_shadow and element.shadow_root is not None:
                found.append(element.shadow_root)
            if include_iframes and element.tag.lower() in ("iframe", "frame"):
                try:
                    doc = element.content_document
                except PermissionError:
                    doc = None
                if doc is not None:
                    found.append(doc)
            for child in found:
                if id(child) in seen:
                    continue
                seen.add(id(child))
                roots.append(child)
                queue.append(child)
    return roots


def is_visible(element: DomElement, viewport: tuple[float, float]) -> bool:
    style = element.computed_style()
    if style.get("display") == "none":
        return False
    if style.get("visibility") in ("hidden", "collapse"):
        return False
    try:
        if float(style.get("opacity", "1") or "1") <= 0:
            return False
    except ValueError:
        pass
    x, y, width, height = element.bounding_rect()
    if width < MIN_VISIBLE_PX or height < MIN_VISIBLE_PX:
        return False
    vw, vh = viewport
    tol = VIEWPORT_TOLERANCE_PX
    return not (y + height < -tol or y > vh + tol or x + width < -tol or x > vw + tol)


def _first_text(element: DomElement, selector: str) -> str:
    if not selector:
        return ""
    for match in element.query_all(selector):
        text = normalize_text(match.text)
        if text:
            return text
    return ""


def _timestamp(element: DomElement, selector: str) -> str:
    if not selector:
        return ""
    for match in element.query_all(selector):
        value = (
            match.get_attribute("datetime")
            or match.get_attribute("data-ts")
            or match.get_attribute("title")
            or match.text
        )
        value = normalize_text(value)
        if value:
            return value
    return ""


def _item_key(
    site: str, element: DomElement, group: SelectorGroup, author: str, ts: str, body: str, prefix: int
) -> str:
    for attr in group.id_attrs:
        value = element.get_attribute(attr)
        if value:
            return f"{site}:{attr}:{value}"
    return f"{site}:{author}|{ts}|{body[:prefix]}"


def _collect(
    rule: SiteRule,
    document: DomDocument,
    table: RuleTable,
    items: list[dict[str, str]],
    seen: set[str],
    taken: set[int],
) -> None:
    limits = table.limits
    roots = discover_roots(document, rule.pierce_shadow, rule.include_iframes)
    viewport = document.viewport
    for group in rule.groups:
        for root in roots:
            for element in root.query_all(group.items):
                if len(items) >= limits.max_items:
                    return
                if id(element) in taken or not is_visible(element, viewport):
                    continue
                title = _first_text(element, group.title)
                body = _first_text(element, group.body) or normalize_text(element.text)
                if not title and not body:
                    continue
                ts = _timestamp(element, group.timestamp)
                key = _item_key(rule.site, element, group, title, ts, body, limits.body_key_prefix)
                if key in seen:
                    continue
                seen.add(key)
                taken.add(id(element))
                items.append({
                    "key": key,
                    "title": title[: limits.max_title_chars],
                    "body": body[: limits.max_body_chars],
                    "source": f"dom-{rule.site}",
                })


def extract_messages(document: DomDocument, table: RuleTable | None = None) -> dict[str, Any]:
    """Returns {host, url, items: [{key, title, body, source}]}."""
    table = table or RuleTable()
    host = (document.host or "").lower()
    items: list[dict[str, str]] = []
    seen: set[str] = set()
    taken: set[int] = set()

    rule = table.for_host(host)
    if rule is not None:
        _collect(rule, document, table, items, seen, taken)
    if len(items) < table.limits.generic_threshold:
        _collect(table.generic, document, table, items, seen, taken)

    logger.debug(f"Extracted {len(items)} item(s) from {host or '<no host>'}")
    return {"host": host, "url": document.url, "items": items}
