"""
Code generator interface — the contract every provider implements.

generate() returns generated text, or None when generation is
unavailable for *any* reason (no API key, provider error, empty reply).
Callers never see an exception; they fall back to a deterministic
template instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class CodeKind:
    ACTION = "action"
    TRIGGER = "trigger"


class CodeGenerator(ABC):
    """
    Abstract base class for code-generation providers.

    Implementations:
        HttpCodeGenerator  — OpenAI / Anthropic / Gemini / OpenRouter over HTTP
        NullCodeGenerator  — always unavailable
        MockCodeGenerator  — for testing
    """

    @abstractmethod
    async def generate(self, kind: str, context: dict[str, Any]) -> str | None:
        """
        Generate code for an action or trigger.

        Args:
            kind:    "action" or "trigger"
            context: JSON-serialisable description of the entity

        Returns:
            Generated text, or None if unavailable.
        """
        ...

    async def close(self) -> None:
        """Release any network resources."""


class NullCodeGenerator(CodeGenerator):
    """Generation permanently unavailable — every caller gets the template."""

    async def generate(self, kind: str, context: dict[str, Any]) -> str | None:
        return None
