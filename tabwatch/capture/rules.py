"""
Site extraction rules — the selector tables the extractor runs on.

Pure data: each SiteRule names the hosts it applies to and an ordered
list of SelectorGroups. A group's ``items`` selector finds message-like
containers; ``title``/``body``/``timestamp`` are queried inside each
container (first match wins, comma-separated alternatives allowed).
``id_attrs`` are read from the container, in order, to build a stable
per-item key.

The in-page script receives these tables as JSON (see to_payload), so
selectors can change without touching the script or the orchestrator.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

MAX_ITEMS = 120
MAX_TITLE_CHARS = 300
MAX_BODY_CHARS = 3000
GENERIC_FALLBACK_THRESHOLD = 10  # site rules yielding fewer items also run generic
BODY_KEY_PREFIX_CHARS = 80


@dataclass(frozen=True)
class SelectorGroup:
    items: str
    title: str = ""
    body: str = ""
    timestamp: str = ""
    id_attrs: tuple[str, ...] = ("id",)


@dataclass(frozen=True)
class SiteRule:
    site: str
    hosts: tuple[str, ...]
    groups: tuple[SelectorGroup, ...]
    pierce_shadow: bool = False     # query inside open shadow roots
    include_iframes: bool = True    # scan same-origin iframe documents

    def matches(self, host: str) -> bool:
        host = (host or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.hosts)


SLACK = SiteRule(
    site="slack",
    hosts=("app.slack.com",),
    groups=(
        SelectorGroup(
            items='[data-qa="virtual-list-item"]',
            title='[data-qa="message_sender_name"], .c-message__sender_button',
            body='[data-qa="message-text"], .c-message_kit__blocks, .p-rich_text_section',
            timestamp=".c-timestamp",
            id_attrs=("data-item-key", "data-msg-ts", "id"),
        ),
        SelectorGroup(
            items=".c-message_kit__background",
            title=".c-message__sender_button",
            body=".c-message_kit__blocks",
            timestamp=".c-timestamp",
            id_attrs=("data-msg-ts", "id"),
        ),
    ),
)

TEAMS = SiteRule(
    site="teams",
    hosts=("teams.microsoft.com", "teams.live.com", "teams.cloud.microsoft"),
    pierce_shadow=True,
    groups=(
        SelectorGroup(
            items='[data-tid="chat-pane-message"]',
            title='[data-tid="message-author-name"]',
            body='[id^="content-"], [data-tid="chat-pane-message-body"]',
            timestamp="time",
            id_attrs=("data-mid", "id"),
        ),
        SelectorGroup(
            items='[data-tid="chat-list-item"], [data-tid="activity-feed-item"]',
            title='[data-tid="chat-list-item-title"], [data-tid="activity-feed-item-title"]',
            body='[data-tid="chat-list-item-preview-message"], [data-tid="activity-feed-item-body"]',
            timestamp="time",
            id_attrs=("data-item-id", "id"),
        ),
        SelectorGroup(
            items=".ui-chat__item",
            title=".ui-chat__message__author",
            body=".ui-chat__message__content",
            timestamp=".ui-chat__message__timestamp",
            id_attrs=("data-mid", "id"),
        ),
    ),
)

GMAIL = SiteRule(
    site="gmail",
    hosts=("mail.google.com",),
    groups=(
        SelectorGroup(
            items="tr.zA",
            title=".yX [email], .yX",
            body=".y6, .y2",
            timestamp=".xW span",
            id_attrs=("data-legacy-thread-id", "data-thread-id", "id"),
        ),
        SelectorGroup(
            items="div.adn",
            title=".gD",
            body=".a3s",
            timestamp=".g3",
            id_attrs=("data-message-id", "data-legacy-message-id", "id"),
        ),
    ),
)

OUTLOOK = SiteRule(
    site="outlook",
    hosts=(
        "outlook.office.com",
        "outlook.office365.us",
        "outlook.live.com",
        "outlook.cloud.microsoft",
    ),
    groups=(
        SelectorGroup(
            items='[role="option"][data-convid]',
            title="span[title]",
            body='[class*="Subject"], [class*="Preview"]',
            timestamp='[class*="Date"], time',
            id_attrs=("data-convid", "id"),
        ),
        SelectorGroup(
            items='[role="listitem"][aria-label]',
            title="span[title]",
            body='[class*="Subject"], [class*="Preview"]',
            timestamp="time",
            id_attrs=("data-item-id", "id"),
        ),
    ),
)

OFFICE = SiteRule(
    site="office",
    hosts=("www.office.com", "office.com", "m365.cloud.microsoft"),
    groups=(
        SelectorGroup(
            items='[data-automationid="ListCell"]',
            title='[data-automationid="name"]',
            body='[data-automationid="activity"]',
            timestamp="time",
            id_attrs=("data-item-key", "id"),
        ),
    ),
)

GENERIC = SiteRule(
    site="generic",
    hosts=(),
    pierce_shadow=True,
    groups=(
        SelectorGroup(
            items='[role="article"], article',
            title='h1, h2, h3, h4, [role="heading"], strong',
            body='p, [class*="body"], [class*="content"], [class*="message"]',
            timestamp="time",
            id_attrs=("data-id", "data-message-id", "id"),
        ),
        SelectorGroup(
            items='[role="listitem"], [role="row"], li',
            title='[role="heading"], strong, b, span[title]',
            body='p, [class*="preview"], [class*="snippet"], [class*="message"]',
            timestamp="time",
            id_attrs=("data-id", "data-item-id", "id"),
        ),
    ),
)

SITE_RULES: tuple[SiteRule, ...] = (SLACK, TEAMS, GMAIL, OUTLOOK, OFFICE)


@dataclass(frozen=True)
class ExtractionLimits:
    max_items: int = MAX_ITEMS
    max_title_chars: int = MAX_TITLE_CHARS
    max_body_chars: int = MAX_BODY_CHARS
    generic_threshold: int = GENERIC_FALLBACK_THRESHOLD
    body_key_prefix: int = BODY_KEY_PREFIX_CHARS


@dataclass(frozen=True)
class RuleTable:
    sites: tuple[SiteRule, ...] = SITE_RULES
    generic: SiteRule = GENERIC
    limits: ExtractionLimits = field(default_factory=ExtractionLimits)

    def for_host(self, host: str) -> SiteRule | None:
        for rule in self.sites:
            if rule.matches(host):
                return rule
        return None


def to_payload(table: RuleTable | None = None) -> dict[str, Any]:
    """The JSON argument handed to the in-page extraction script."""
    table = table or RuleTable()
    return {
        "sites": [asdict(rule) for rule in table.sites],
        "generic": asdict(table.generic),
        "limits": asdict(table.limits),
    }


def rules_for_host(host: str) -> SiteRule | None:
    """Site rule for a hostname, or None for unknown hosts (generic only)."""
    return RuleTable().for_host(host)
