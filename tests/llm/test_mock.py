"""Tests for the mock code generator."""

import pytest

from tabwatch.llm.base import NullCodeGenerator
from tabwatch.llm.mock import MockCodeGenerator


@pytest.mark.asyncio
async def test_default_response():
    """Nothing queued: the default (unavailable) is returned."""
    mock = MockCodeGenerator()
    assert await mock.generate("action", {}) is None

    mock = MockCodeGenerator(default="pass")
    assert await mock.generate("action", {}) == "pass"


@pytest.mark.asyncio
async def test_responses_returned_in_order():
    mock = MockCodeGenerator(default="fallback")
    mock.set_response("first")
    mock.set_response(None)

    assert await mock.generate("action", {}) == "first"
    assert await mock.generate("action", {}) is None
    assert await mock.generate("action", {}) == "fallback"


@pytest.mark.asyncio
async def test_call_tracking():
    mock = MockCodeGenerator()
    await mock.generate("action", {"name": "A"})
    await mock.generate("trigger", {"name": "T"})

    assert mock.call_count == 2
    assert mock.calls[1] == {"kind": "trigger", "context": {"name": "T"}}


@pytest.mark.asyncio
async def test_reset_and_close():
    mock = MockCodeGenerator()
    mock.set_response("x")
    await mock.generate("action", {})
    mock.set_response("y")

    mock.reset()
    await mock.close()

    assert mock.call_count == 0
    assert await mock.generate("action", {}) is None
    assert mock.closed is True


@pytest.mark.asyncio
async def test_null_generator_is_unavailable():
    generator = NullCodeGenerator()
    assert await generator.generate("trigger", {"name": "T"}) is None
    await generator.close()
