"""
Deterministic fallback code for actions and triggers.

Used whenever the code generator returns None. Each template carries
the entity's name, kind/source, instructions/match text and schedule as
comments, followed by a minimal runnable Python stub.
"""

from __future__ import annotations

from typing import Any

from tabwatch.automation.models import Action, Trigger

UNAVAILABLE_NOTE = "# LLM generation unavailable; using fallback template."


def _comment(text: str) -> str:
    """Keep multi-line user text inside the comment block."""
    return " ".join((text or "").split())


def fallback_action_code(action: Action) -> str:
    kind = action.kind or "custom"
    lines = [
        f"# Action: {_comment(action.name)}",
        f"# Kind: {_comment(kind)}",
        f"# Plain-text instructions: {_comment(action.instructions)}",
        f"# Schedule text: {_comment(action.schedule_text) or 'always'}",
        "",
        f"ACTION_KIND = {kind!r}",
        f"INSTRUCTIONS = {(action.instructions or '')!r}",
        "",
        "",
        "async def run_action(context):",
        '    """context holds the message payload and trigger metadata."""',
        '    message = context["message"]',
        '    trigger = context["trigger"]',
        "    prompt = \"\\n\".join([",
        '        "Action kind: " + ACTION_KIND,',
        '        "Instructions: " + INSTRUCTIONS,',
        '        "Message title: " + (message.get("title") or ""),',
        '        "Message body: " + (message.get("body") or ""),',
        "    ])",
        "    # Replace with a real provider call in your runtime worker.",
        "    return {",
        '        "status": "planned",',
        '        "summary": f"Will execute {ACTION_KIND} for trigger {trigger[\'name\']}",',
        '        "prompt": prompt,',
        "    }",
    ]
    return "\n".join(lines) + "\n"


def fallback_trigger_code(trigger: Trigger) -> str:
    lines = [
        f"# Trigger: {_comment(trigger.name)}",
        f"# Source tab: {_comment(trigger.source_tab)}",
        f"# Match expression (plain text): {_comment(trigger.match_text)}",
        f"# Schedule text: {_comment(trigger.schedule_text) or 'always'}",
        "",
        "import re",
        "",
        f"MATCH_EXPRESSION = {(trigger.match_text or '')!r}",
        "",
        "",
        "def matches_message(message):",
        '    haystack = f"{message.get(\'title\') or \'\'}\\n{message.get(\'body\') or \'\'}"',
        "    expression = MATCH_EXPRESSION.strip()",
        "    if not expression:",
        "        return True",
        '    if expression.lower().startswith("regex:"):',
        "        return re.search(expression[6:].strip(), haystack, re.IGNORECASE) is not None",
        '    terms = [t.strip().lower() for t in re.split(r"[\\n,]", expression) if t.strip()]',
        "    return not terms or any(t in haystack.lower() for t in terms)",
    ]
    return "\n".join(lines) + "\n"


def codegen_context(entity: Action | Trigger) -> dict[str, Any]:
    """What the provider sees: the entity minus any previous artifact."""
    data = entity.to_dict()
    data.pop("generated_code", None)
    return data
