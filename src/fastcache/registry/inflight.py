"""In-flight request coalescing for registry operations."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Share one running operation between concurrent callers of the same key.

    Entries exist only while the operation runs: they are dropped when it
    settles (success, failure or cancellation), so results are not cached and
    a failed operation can be retried by a later call.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()
        self._started = 0

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Await the operation registered under ``key``, starting it if absent.

        Args:
            key: Deduplication key.
            factory: Zero-argument callable returning the coroutine to run when
                no operation is in flight for ``key``.

        Returns:
            The operation's result; its exception is raised to every awaiter.
        """
        with self._lock:
            task = self._tasks.get(key)
            if task is None:
                task = asyncio.ensure_future(factory())
                self._tasks[key] = task
                self._started += 1
                task.add_done_callback(lambda t, k=key: self._settle(k, t))
                logger.debug("Started in-flight operation %s", key)
            else:
                logger.debug("Joining in-flight operation %s", key)
        # One awaiter being cancelled must not cancel the shared operation.
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        with self._lock:
            if self._tasks.get(key) is task:
                del self._tasks[key]
        if not task.cancelled():
            # Mark the exception retrieved; awaiters still receive it.
            task.exception()

    def cancel(self, key: str) -> bool:
        """Cancel the operation in flight under ``key``; True if one was running."""
        with self._lock:
            task: Optional[asyncio.Task] = self._tasks.get(key)
        if task is None or task.done():
            return False
        return task.cancel()

    async def drain(self) -> None:
        """Cancel every operation in flight and wait for each to settle."""
        with self._lock:
            tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("Draining %d in-flight operations", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    def pending(self) -> List[str]:
        """Keys with an operation currently in flight."""
        with self._lock:
            return list(self._tasks)

    @property
    def started_count(self) -> int:
        """Number of operations actually started (joins are not counted)."""
        return self._started

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
