"""
BackgroundWriter — fire-and-forget persistence with a bounded drain.

The pipeline never awaits storage. Each write is scheduled as a task
and tracked in an outstanding set; failures are logged and swallowed.
flush() waits for everything scheduled so far (used by tests and the
CLI), close() waits at most ``grace`` seconds, cancels stragglers and
then closes the storage handle.

Usage:
    writer = BackgroundWriter(storage)
    writer.submit(storage.insert_message, message)   # from sync code
    await writer.flush()
    await writer.close(grace=5.0)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from tabwatch.store.base import StorageProvider

logger = logging.getLogger(__name__)

WriteFunc = Callable[..., Awaitable[Any]]


class BackgroundWriter:
    def __init__(self, storage: StorageProvider) -> None:
        self._storage = storage
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self.failures = 0
        self.dropped = 0

    @property
    def storage(self) -> StorageProvider:
        return self._storage

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, write: WriteFunc, *args: Any) -> None:
        """
        Schedule ``write(*args)`` without waiting for it.

        Callable from synchronous code. With no running loop, or after
        close(), the write is dropped and logged at DEBUG.
        """
        name = getattr(write, "__name__", "write")
        if self._closed:
            self.dropped += 1
            logger.debug(f"Writer closed, dropping {name}")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.dropped += 1
            logger.debug(f"No event loop, dropping {name}")
            return
        task = loop.create_task(self._run(write, args, name), name=f"persist:{name}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, write: WriteFunc, args: tuple, name: str) -> None:
        try:
            await write(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(f"Persistence write {name} failed (ignored): {e}")

    async def flush(self) -> None:
        """Wait for every write scheduled so far, including ones they schedule."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self, grace: float = 5.0) -> None:
        """Drain for up to ``grace`` seconds, cancel the rest, close storage."""
        self._closed = True
        if self._pending:
            pending = list(self._pending)
            done, not_done = await asyncio.wait(pending, timeout=grace)
            if not_done:
                logger.warning(
                    f"Shutdown grace of {grace}s expired with {len(not_done)} "
                    f"write(s) in flight; cancelling"
                )
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
        try:
            await self._storage.close()
        except Exception as e:
            logger.warning(f"Storage close failed: {e}")
