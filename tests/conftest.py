"""Shared test fixtures for Tabwatch."""

from datetime import datetime

import pytest

from tabwatch.automation.service import AutomationService
from tabwatch.core.bus import EventBus
from tabwatch.core.config import TabwatchConfig
from tabwatch.llm.mock import MockCodeGenerator
from tabwatch.store.memory import InMemoryStorage

# 2026-10-13 is a Tuesday, 2026-10-17 a Saturday (local time)
TUESDAY_0900 = datetime(2026, 10, 13, 9, 0).timestamp()
SATURDAY_0900 = datetime(2026, 10, 17, 9, 0).timestamp()


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = TUESDAY_0900) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config(tmp_path):
    """Default config without loading from disk."""
    return TabwatchConfig(storage={"db_path": str(tmp_path / "tabwatch.db")})


@pytest.fixture
def bus():
    """Create a fresh event bus."""
    return EventBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def mock_codegen():
    """Create a mock code generator."""
    return MockCodeGenerator()


@pytest.fixture
def service(config, storage, bus, mock_codegen, clock):
    """Automation service over in-memory storage and a fixed clock."""
    return AutomationService(config, storage, bus=bus, codegen=mock_codegen, clock=clock)
