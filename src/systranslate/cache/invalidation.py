"""Cache invalidation strategies.

Two interchangeable strategies answer "is this unit still valid?":

- RevalidateOnRequest: re-hash the unit's recorded inputs on every request.
- FileWatchInvalidator: watch every input with watchdog and drop units as
  soon as a file changes; a unit still in the cache is valid by definition.

Either way, a request issued after a relevant change never observes stale
compiled output.
"""

from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import Callable
from typing import Literal, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from systranslate.cache.store import TranslationCache, TranslationUnit
from systranslate.core.console import get_logger
from systranslate.core.fingerprint import inputs_unchanged

logger = get_logger(__name__)

WatchPolicy = Literal["all", "dependents"]


class InvalidationStrategy(Protocol):
    async def is_valid(self, unit: TranslationUnit) -> bool:
        """True if ``unit`` may be served for the current request."""
        ...

    def track(self, unit: TranslationUnit) -> None:
        """Start observing the inputs of a freshly stored unit."""
        ...

    def close(self) -> None:
        ...


class RevalidateOnRequest:
    """Passive mode: compare recorded input digests with the files on disk."""

    async def is_valid(self, unit: TranslationUnit) -> bool:
        if await inputs_unchanged(unit.inputs):
            return True
        logger.debug("Inputs of %s changed", unit.path)
        return False

    def track(self, unit: TranslationUnit) -> None:
        pass

    def close(self) -> None:
        pass


def _event_paths(event: FileSystemEvent) -> list[str]:
    paths = [os.fsdecode(event.src_path)]
    dest = getattr(event, "dest_path", None)
    if dest:
        paths.append(os.fsdecode(dest))
    return [os.path.abspath(path) for path in paths]


class _WatchHandler(FileSystemEventHandler):
    """Forwards file events from the observer thread."""

    def __init__(self, dispatch: Callable[[str], None]) -> None:
        super().__init__()
        self._dispatch = dispatch

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def _handle_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        for path in _event_paths(event):
            self._dispatch(path)


class FileWatchInvalidator:
    """Active mode: invalidate on watchdog events for any tracked input.

    Policy "all" clears the whole cache on any watched change; "dependents"
    removes only units whose recorded inputs contain the changed file.

    Events are marshalled onto the event loop that tracked the first unit,
    so cache mutation happens between request steps, not mid-request.
    """

    def __init__(
        self,
        cache: TranslationCache,
        *,
        policy: WatchPolicy = "all",
        observer: BaseObserver | None = None,
    ) -> None:
        self._cache = cache
        self._policy = policy
        self._observer = observer
        self._started = False
        self._handler = _WatchHandler(self._dispatch)
        self._watched: set[str] = set()
        self._scheduled_dirs: set[str] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()

    @property
    def watched(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._watched)

    async def is_valid(self, unit: TranslationUnit) -> bool:
        return True

    def track(self, unit: TranslationUnit) -> None:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass

        new_dirs: list[str] = []
        with self._lock:
            for input_path in unit.inputs:
                self._watched.add(input_path)
                directory = os.path.dirname(input_path)
                if directory not in self._scheduled_dirs:
                    self._scheduled_dirs.add(directory)
                    new_dirs.append(directory)

        for directory in new_dirs:
            self._schedule(directory)

    def invalidate(self, path: str) -> None:
        """Apply the policy for a change to ``path``."""
        if self._policy == "dependents":
            removed = self._cache.invalidate_dependents(path)
            if removed:
                logger.info("%s changed; invalidated %d dependent unit(s)", path, len(removed))
            return
        count = self._cache.invalidate_all()
        logger.info("%s changed; cleared %d cached unit(s)", path, count)

    def close(self) -> None:
        if self._observer is not None and self._started:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._started = False

    def _ensure_observer(self) -> BaseObserver:
        if self._observer is None:
            self._observer = Observer()
        if not self._started:
            self._observer.start()
            self._started = True
        return self._observer

    def _schedule(self, directory: str) -> None:
        try:
            observer = self._ensure_observer()
            observer.schedule(self._handler, directory, recursive=False)
        except OSError as exc:
            logger.warning(
                "Cannot watch %s (%s); changes to files there go undetected",
                directory,
                exc,
            )
            return
        logger.debug("Watching %s", directory)

    def _dispatch(self, path: str) -> None:
        """Called on the observer thread."""
        with self._lock:
            if path not in self._watched:
                return
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self.invalidate, path)
                return
            except RuntimeError:
                logger.debug("Event loop closed; invalidating %s inline", path)
        self.invalidate(path)


__all__ = [
    "FileWatchInvalidator",
    "InvalidationStrategy",
    "RevalidateOnRequest",
    "WatchPolicy",
]
