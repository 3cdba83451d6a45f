"""
Match expression DSL — does a message's content match a trigger?

Forms, checked in order:
    ""                      → matches everything
    "regex:<pattern>"       → case-insensitive regex search
    "/pattern/flags"        → regex with JS-style flags, forced case-insensitive
    "urgent, asap\\ndeploy"  → keyword list (comma/newline separated, OR)

The haystack is "<title>\\n<body>". Keywords compare lowercase substrings.
A broken pattern never raises: it is reported as matched=False with a
reason, so the pipeline always produces a result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

_REGEX_PREFIX_RE = re.compile(r"^regex:\s*(.+)$", re.IGNORECASE)
_SLASH_RE = re.compile(r"^/(.+)/([gimsuy]*)$")
_TERM_SPLIT_RE = re.compile(r"[\n,]")

# JS flag letters → Python re flags. g/u/y have no search-time meaning here.
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    reason: str


def evaluate_match(expression: str | None, message: Any) -> MatchResult:
    """
    Evaluate ``expression`` against a message.

    ``message`` is anything with ``title``/``body`` attributes or keys.
    """
    title, body = _title_body(message)
    haystack = f"{title}\n{body}"
    text = (expression or "").strip()
    if not text:
        return MatchResult(True, "empty match expression defaults to true")

    m = _REGEX_PREFIX_RE.match(text)
    if m:
        try:
            regex = re.compile(m.group(1), re.IGNORECASE)
        except re.error:
            return MatchResult(False, "invalid regex expression")
        matched = regex.search(haystack) is not None
        return MatchResult(matched, f"regex {'matched' if matched else 'did not match'}")

    m = _SLASH_RE.match(text)
    if m:
        flags = re.IGNORECASE
        for letter in m.group(2):
            flags |= _FLAG_MAP.get(letter, 0)
        try:
            regex = re.compile(m.group(1), flags)
        except re.error:
            return MatchResult(False, "invalid regex expression")
        matched = regex.search(haystack) is not None
        return MatchResult(
            matched, f"slash-regex {'matched' if matched else 'did not match'}"
        )

    terms = [t.strip().lower() for t in _TERM_SPLIT_RE.split(text)]
    terms = [t for t in terms if t]
    if not terms:
        return MatchResult(True, "empty term list defaults to true")

    lowered = haystack.lower()
    for term in terms:
        if term in lowered:
            return MatchResult(True, f'matched keyword "{term}"')
    return MatchResult(False, "no keyword match")


def _title_body(message: Any) -> tuple[str, str]:
    if isinstance(message, Mapping):
        return str(message.get("title") or ""), str(message.get("body") or "")
    return str(getattr(message, "title", "") or ""), str(getattr(message, "body", "") or "")
