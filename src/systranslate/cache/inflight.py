"""Per-key coalescing of in-flight compilations.

Concurrent requests for the same uncached path share one asyncio Task.
Waiters await it through ``asyncio.shield`` so a disconnecting client never
cancels work other requesters (or the cache) will use.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from systranslate.core.console import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class InFlightCompilations(Generic[T]):
    """At most one running task per key; everyone else awaits it."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[T]] = {}

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Await the task for ``key``, starting ``factory()`` if none is running.

        All callers observe the same outcome: the same value, or the same
        exception raised again.
        """
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug("Joining in-flight compilation of %s", key)
        return await asyncio.shield(task)

    def running(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def _forget(self, key: str, task: asyncio.Task[T]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            # exception() marks it retrieved; waiters still re-raise it
            logger.debug("Compilation of %s raised %r", key, task.exception())


__all__ = ["InFlightCompilations"]
