"""Tests for the DOM extractor, run against a small fake DOM."""

from __future__ import annotations

import pytest
import pytest_asyncio

from tabwatch.capture.extractor import (
    DomDocument,
    DomElement,
    DomRoot,
    discover_roots,
    extract_messages,
    is_visible,
    normalize_text,
)
from tabwatch.capture.rules import (
    ExtractionLimits,
    RuleTable,
    SelectorGroup,
    SiteRule,
    rules_for_host,
    to_payload,
)
from tabwatch.capture.script import load_extractor_script

# ── Fake DOM ──────────────────────────────────────────────────────────────────
# An element "matches" a selector when the selector string is in its tags.
# query_all() walks light-DOM descendants only, like querySelectorAll.


class FakeElement(DomElement):
    def __init__(
        self,
        tag="div",
        tags=(),
        text="",
        attrs=None,
        children=(),
        style=None,
        rect=(0, 0, 200, 40),
        shadow=None,
        document=None,
        cross_origin=False,
    ):
        self._tag = tag
        self.tags = set(tags)
        self._text = text
        self.attrs = attrs or {}
        self.children = list(children)
        self.style = {"display": "block", "visibility": "visible", "opacity": "1", **(style or {})}
        self.rect = rect
        self._shadow = shadow
        self._document = document
        self._cross_origin = cross_origin

    @property
    def tag(self):
        return self._tag

    def descendants(self):
        for child in self.children:
            yield child
            yield from child.descendants()

    def query_all(self, selector):
        return [e for e in self.descendants() if selector == "*" or selector in e.tags]

    def get_attribute(self, name):
        return self.attrs.get(name)

    @property
    def text(self):
        own = [self._text] if self._text else []
        return " ".join(own + [c.text for c in self.children if c.text])

    def computed_style(self):
        return self.style

    def bounding_rect(self):
        return self.rect

    @property
    def shadow_root(self):
        return self._shadow

    @property
    def content_document(self):
        if self._cross_origin:
            raise PermissionError("Blocked a frame from accessing a cross-origin frame")
        return self._document


class FakeShadowRoot(DomRoot):
    def __init__(self, *children):
        self.body = FakeElement(children=children)

    def query_all(self, selector):
        return self.body.query_all(selector)


class FakeDocument(DomDocument):
    def __init__(self, *children, host="chat.example.com", viewport=(1280, 800)):
        self.body = FakeElement(tag="body", children=children)
        self._host = host
        self._viewport = viewport

    def query_all(self, selector):
        return self.body.query_all(selector)

    @property
    def url(self):
        return f"https://{self._host}/"

    @property
    def host(self):
        return self._host

    @property
    def viewport(self):
        return self._viewport


def message(author, body, ts="", attrs=None, **kwargs):
    children = [
        FakeElement(tags={"author"}, text=author),
        FakeElement(tags={"text"}, text=body),
    ]
    if ts:
        children.append(FakeElement(tags={"ts"}, attrs={"datetime": ts}))
    return FakeElement(tags={"msg"}, attrs=attrs, children=children, **kwargs)


CHAT = SiteRule(
    site="chat",
    hosts=("example.com",),
    groups=(SelectorGroup(items="msg", title="author", body="text", timestamp="ts"),),
    pierce_shadow=True,
)
FALLBACK = SiteRule(
    site="generic",
    hosts=(),
    groups=(SelectorGroup(items="article", title="heading", body="para"),),
)


def table(**limits) -> RuleTable:
    return RuleTable(sites=(CHAT,), generic=FALLBACK, limits=ExtractionLimits(**limits))


# ━━━ Helpers ━━━


def test_normalize_text():
    assert normalize_text("  a \n\t b  ") == "a b"
    assert normalize_text(None) == ""


def test_visibility_rules():
    viewport = (1000, 800)
    assert is_visible(FakeElement(), viewport)
    assert not is_visible(FakeElement(style={"display": "none"}), viewport)
    assert not is_visible(FakeElement(style={"visibility": "hidden"}), viewport)
    assert not is_visible(FakeElement(style={"opacity": "0"}), viewport)
    assert not is_visible(FakeElement(rect=(0, 0, 1, 40)), viewport)
    # within the 400px tolerance below the fold, but not beyond it
    assert is_visible(FakeElement(rect=(0, 1100, 100, 20)), viewport)
    assert not is_visible(FakeElement(rect=(0, 1300, 100, 20)), viewport)


def test_discover_roots_pierces_shadow_and_same_origin_iframes():
    shadow = FakeShadowRoot(message("Ana", "in shadow"))
    inner = FakeDocument(message("Bo", "in iframe"))
    doc = FakeDocument(
        FakeElement(shadow=shadow),
        FakeElement(tag="iframe", document=inner),
        FakeElement(tag="iframe", cross_origin=True),
    )

    roots = discover_roots(doc, pierce_shadow=True, include_iframes=True)
    assert roots == [doc, shadow, inner]

    assert discover_roots(doc, pierce_shadow=False, include_iframes=True) == [doc, inner]
    assert discover_roots(doc, pierce_shadow=True, include_iframes=False) == [doc, shadow]


def test_rules_for_host():
    assert rules_for_host("app.slack.com").site == "slack"
    assert rules_for_host("teams.microsoft.com").pierce_shadow is True
    assert rules_for_host("example.org") is None


def test_payload_is_plain_data():
    payload = to_payload()
    assert payload["limits"]["max_items"] == 120
    assert payload["generic"]["site"] == "generic"
    assert {rule["site"] for rule in payload["sites"]} >= {"slack", "teams", "gmail"}


# ━━━ Extraction ━━━


def test_extracts_visible_messages():
    doc = FakeDocument(
        message("Ana", "deploy is done", ts="2026-10-13T09:00"),
        message("Bo", "hidden", style={"display": "none"}),
    )

    result = extract_messages(doc, table())

    assert result["host"] == "chat.example.com"
    assert result["url"] == "https://chat.example.com/"
    assert len(result["items"]) == 1
    item = result["items"][0]
    assert item["title"] == "Ana"
    assert item["body"] == "deploy is done"
    assert item["source"] == "dom-chat"
    assert item["key"] == "chat:Ana|2026-10-13T09:00|deploy is done"


def test_items_from_shadow_and_iframe_roots():
    doc = FakeDocument(
        FakeElement(shadow=FakeShadowRoot(message("Ana", "from shadow"))),
        FakeElement(tag="iframe", document=FakeDocument(message("Bo", "from iframe"))),
        FakeElement(tag="iframe", cross_origin=True),
    )
    bodies = [i["body"] for i in extract_messages(doc, table())["items"]]
    assert bodies == ["from shadow", "from iframe"]


def test_id_attribute_keys_and_dedup():
    doc = FakeDocument(
        message("Ana", "first", attrs={"id": "m-1"}),
        message("Ana", "same id, new text", attrs={"id": "m-1"}),
        message("Bo", "repeat"),
        message("Bo", "repeat"),
    )
    items = extract_messages(doc, table())["items"]
    assert [i["key"] for i in items] == ["chat:id:m-1", "chat:Bo||repeat"]


def test_body_falls_back_to_container_text():
    container = FakeElement(tags={"msg"}, text="just some text")
    items = extract_messages(FakeDocument(container), table())["items"]
    assert items[0]["title"] == ""
    assert items[0]["body"] == "just some text"


def test_truncation_and_item_cap():
    doc = FakeDocument(*[message("A" * 50, f"body {i} " + "x" * 50) for i in range(5)])
    items = extract_messages(doc, table(max_items=3, max_title_chars=10, max_body_chars=20))["items"]
    assert len(items) == 3
    assert all(len(i["title"]) == 10 and len(i["body"]) <= 20 for i in items)


def test_generic_fallback_below_threshold():
    article = FakeElement(
        tags={"article"},
        children=[FakeElement(tags={"heading"}, text="News"), FakeElement(tags={"para"}, text="hi")],
    )
    doc = FakeDocument(message("Ana", "one"), article)

    items = extract_messages(doc, table())["items"]
    assert [i["source"] for i in items] == ["dom-chat", "dom-generic"]

    items = extract_messages(doc, table(generic_threshold=1))["items"]
    assert [i["source"] for i in items] == ["dom-chat"]


def test_unknown_host_uses_generic_only():
    doc = FakeDocument(message("Ana", "one"), host="elsewhere.org")
    assert extract_messages(doc, table())["items"] == []


def test_generic_pass_skips_elements_the_site_rule_took():
    both = FakeElement(
        tags={"msg", "article"},
        children=[FakeElement(tags={"author", "heading"}, text="Ana"), FakeElement(tags={"text", "para"}, text="hi")],
    )
    items = extract_messages(FakeDocument(both), table())["items"]
    assert [(i["key"], i["source"]) for i in items] == [("chat:Ana||hi", "dom-chat")]


def test_slack_row_is_not_captured_again_as_generic_listitem():
    slack_items = RuleTable().for_host("app.slack.com").groups[0]
    generic_items = RuleTable().generic.groups[1].items
    row = FakeElement(
        tags={slack_items.items, generic_items},
        attrs={"data-item-key": "1760000000.0001"},
        children=[
            FakeElement(tags={slack_items.title, "strong"}, text="Ana"),
            FakeElement(tags={slack_items.body, "p"}, text="URGENT deploy"),
        ],
    )
    doc = FakeDocument(row, host="app.slack.com")

    items = extract_messages(doc, RuleTable())["items"]

    assert len(items) == 1
    assert items[0]["key"] == "slack:data-item-key:1760000000.0001"
    assert items[0]["source"] == "dom-slack"


# ━━━ In-page script (Chromium) ━━━

BLANK = "<html><body></body></html>"

CHAT_PAGE = """<html><body>
<article id="a1"><h2>Ana</h2><p>deploy is done</p></article>
<div id="shadow-host"></div>
<iframe srcdoc="<article id='a3'><h2>Cy</h2><p>from iframe</p></article>"></iframe>
<iframe src="https://other.example.org/"></iframe>
<script>
  document.getElementById("shadow-host").attachShadow({mode: "open"}).innerHTML =
    "<article id='a2'><h2>Bo</h2><p>from shadow</p></article>";
</script>
</body></html>"""

OTHER_ORIGIN_PAGE = "<html><body><article id='x1'><h2>Eve</h2><p>cross origin</p></article></body></html>"

SLACK_PAGE = """<html><body>
<div data-qa="virtual-list-item" role="listitem" data-item-key="1760000000.0001">
  <span data-qa="message_sender_name">Ana</span>
  <div data-qa="message-text">URGENT deploy</div>
</div>
</body></html>"""

PAGES = {
    "https://chat.example.com/": CHAT_PAGE,
    "https://other.example.org/": OTHER_ORIGIN_PAGE,
    "https://app.slack.com/client": SLACK_PAGE,
}


@pytest_asyncio.fixture
async def browser_page():
    async_api = pytest.importorskip("playwright.async_api")
    async with async_api.async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch()
        except Exception as e:
            pytest.skip(f"Chromium is not available: {e}")
        page = await browser.new_page()

        async def serve(route):
            body = PAGES.get(route.request.url, BLANK)
            await route.fulfill(status=200, content_type="text/html", body=body)

        await page.route("**/*", serve)
        yield page
        await browser.close()


async def run_script(page, url):
    await page.goto(url, wait_until="load")
    return await page.evaluate(load_extractor_script(), to_payload(RuleTable()))


def generic_article(id_, author, body):
    group = RuleTable().generic.groups[0]
    return FakeElement(
        tags={group.items},
        attrs={"id": id_},
        children=[FakeElement(tags={group.title}, text=author), FakeElement(tags={group.body}, text=body)],
    )


@pytest.mark.asyncio
async def test_script_matches_python_extractor(browser_page):
    mirror = FakeDocument(
        generic_article("a1", "Ana", "deploy is done"),
        FakeElement(shadow=FakeShadowRoot(generic_article("a2", "Bo", "from shadow"))),
        FakeElement(tag="iframe", document=FakeDocument(generic_article("a3", "Cy", "from iframe"))),
        FakeElement(tag="iframe", cross_origin=True),
    )
    expected = extract_messages(mirror, RuleTable())

    result = await run_script(browser_page, "https://chat.example.com/")

    assert result["host"] == expected["host"] == "chat.example.com"
    assert result["url"] == expected["url"]
    assert result["items"] == expected["items"]
    assert [i["key"] for i in result["items"]] == ["generic:id:a1", "generic:id:a2", "generic:id:a3"]


@pytest.mark.asyncio
async def test_script_does_not_recapture_slack_row_as_generic(browser_page):
    result = await run_script(browser_page, "https://app.slack.com/client")

    assert result["items"] == [
        {
            "key": "slack:data-item-key:1760000000.0001",
            "title": "Ana",
            "body": "URGENT deploy",
            "source": "dom-slack",
        }
    ]
