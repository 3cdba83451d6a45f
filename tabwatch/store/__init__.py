"""Durable storage for the automation state."""

from tabwatch.store.base import StorageProvider, StoredState
from tabwatch.store.memory import InMemoryStorage
from tabwatch.store.sqlite import SQLiteStorage
from tabwatch.store.writer import BackgroundWriter

__all__ = [
    "StorageProvider",
    "StoredState",
    "InMemoryStorage",
    "SQLiteStorage",
    "BackgroundWriter",
]
