"""
Mock code generator — for testing.

Returns queued responses without any network calls and tracks every
call for assertions.
"""

from __future__ import annotations

from typing import Any

from tabwatch.llm.base import CodeGenerator


class MockCodeGenerator(CodeGenerator):
    """
    Usage in tests:
        mock = MockCodeGenerator()
        mock.set_response("def run_action(context): ...")
        await service.add_action("Notify", use_llm=True)
        assert mock.calls[0]["kind"] == "action"

    With nothing queued, generate() returns ``default`` (None = unavailable).
    """

    def __init__(self, default: str | None = None) -> None:
        self._responses: list[str | None] = []
        self._default = default
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def set_response(self, text: str | None) -> None:
        """Queue a response (None simulates an unavailable provider)."""
        self._responses.append(text)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, kind: str, context: dict[str, Any]) -> str | None:
        self.calls.append({"kind": kind, "context": context})
        if self._responses:
            return self._responses.pop(0)
        return self._default

    async def close(self) -> None:
        self.closed = True

    def reset(self) -> None:
        self._responses.clear()
        self.calls.clear()
