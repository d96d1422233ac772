"""Translation cache keyed by resolved source path.

This module provides:
- TranslationUnit: immutable record of one successful translation
- TranslationCache: thread-safe mapping of resolved path -> unit, with a
  reverse index from input file to dependent units

Units are replaced wholesale, never mutated, so readers always see a body
and dependency list produced by the same compiler invocation.

Each key carries a generation counter (plus a global epoch bumped by
invalidate_all). A compilation records the generation before it starts and
stores its result with put_if_current(); if the key was invalidated while
the compiler ran, the result is handed to its requesters but not cached.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

Generation = tuple[int, int]


@dataclass(frozen=True, slots=True)
class TranslationUnit:
    """Cached translation of one resolved path.

    ``inputs`` maps every file read for this translation (the requested file
    first) to the digest of its compiled content.
    """

    path: str
    code: str
    dependencies: tuple[str, ...]
    inputs: Mapping[str, str]
    etag: str
    compiled_at: float = field(default_factory=time.time)


class TranslationCache:
    """Process-local store of TranslationUnits.

    Thread-safe for concurrent access; watch events and request handlers may
    touch it from different threads.

    Usage:
        cache = TranslationCache()
        generation = cache.generation(key)
        unit = ...  # compile
        cache.put_if_current(key, unit, generation)
    """

    def __init__(self) -> None:
        self._units: dict[str, TranslationUnit] = {}
        self._dependents: dict[str, set[str]] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    def get(self, path: str) -> TranslationUnit | None:
        with self._lock:
            return self._units.get(path)

    def put(self, path: str, unit: TranslationUnit) -> None:
        """Store ``unit``, replacing any previous unit for ``path``."""
        with self._lock:
            self._put_unlocked(path, unit)

    def put_if_current(self, path: str, unit: TranslationUnit, generation: Generation) -> bool:
        """Store ``unit`` only if ``path`` was not invalidated since ``generation``.

        Returns:
            True if stored, False if the result was discarded as stale
        """
        with self._lock:
            if self._generation_unlocked(path) != generation:
                return False
            self._put_unlocked(path, unit)
            return True

    def generation(self, path: str) -> Generation:
        with self._lock:
            return self._generation_unlocked(path)

    def invalidate(self, path: str) -> bool:
        """Remove the unit for ``path``.

        Returns:
            True if a unit was removed
        """
        with self._lock:
            self._bump_unlocked(path)
            return self._remove_unlocked(path)

    def invalidate_dependents(self, input_path: str) -> list[str]:
        """Remove every unit that read ``input_path``.

        Returns:
            Keys of the removed units
        """
        with self._lock:
            keys = sorted(self._dependents.get(input_path, ()))
            for key in keys:
                self._bump_unlocked(key)
                self._remove_unlocked(key)
            # A compile of input_path itself may be running and not indexed yet.
            self._bump_unlocked(input_path)
            return keys

    def invalidate_all(self) -> int:
        """Remove every unit.

        Returns:
            Number of units removed
        """
        with self._lock:
            count = len(self._units)
            self._units.clear()
            self._dependents.clear()
            self._generations.clear()
            self._epoch += 1
            return count

    def units(self) -> list[TranslationUnit]:
        """Snapshot of the cached units."""
        with self._lock:
            return list(self._units.values())

    def watched_inputs(self) -> set[str]:
        """Every input file of every cached unit."""
        with self._lock:
            return set(self._dependents)

    def dependents_of(self, input_path: str) -> set[str]:
        with self._lock:
            return set(self._dependents.get(input_path, ()))

    def stats(self) -> dict[str, int]:
        """Return cache statistics.

        Returns:
            Dict with 'entries', 'inputs' and 'epoch' counts
        """
        with self._lock:
            return {
                "entries": len(self._units),
                "inputs": len(self._dependents),
                "epoch": self._epoch,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._units)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._units

    def _generation_unlocked(self, path: str) -> Generation:
        return (self._epoch, self._generations.get(path, 0))

    def _bump_unlocked(self, path: str) -> None:
        """Advance the generation of ``path``. Must hold lock."""
        self._generations[path] = self._generations.get(path, 0) + 1

    def _put_unlocked(self, path: str, unit: TranslationUnit) -> None:
        """Replace and re-index. Must hold lock."""
        self._remove_unlocked(path)
        self._units[path] = unit
        for input_path in unit.inputs:
            self._dependents.setdefault(input_path, set()).add(path)

    def _remove_unlocked(self, path: str) -> bool:
        """Drop a unit and its index entries. Must hold lock."""
        unit = self._units.pop(path, None)
        if unit is None:
            return False
        for input_path in unit.inputs:
            dependents = self._dependents.get(input_path)
            if dependents is None:
                continue
            dependents.discard(path)
            if not dependents:
                del self._dependents[input_path]
        return True


__all__ = ["Generation", "TranslationCache", "TranslationUnit"]
