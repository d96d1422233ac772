"""Tests for cache/invalidation.py - passive and watch-based strategies."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import DirModifiedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from systranslate.cache.invalidation import (
    FileWatchInvalidator,
    RevalidateOnRequest,
    _WatchHandler,
)
from systranslate.cache.store import TranslationCache, TranslationUnit
from systranslate.core.fingerprint import MISSING_DIGEST, digest_file


def unit_for(path: Path, *deps: Path) -> TranslationUnit:
    inputs = {str(item): digest_file(item) or MISSING_DIGEST for item in (path, *deps)}
    return TranslationUnit(
        path=str(path), code="code", dependencies=(), inputs=inputs, etag='"e"'
    )


@pytest.fixture
def files(tmp_path: Path) -> dict[str, Path]:
    names = {"main": "main.js", "dep": "dep.js", "other": "other.js"}
    paths = {}
    for key, name in names.items():
        path = tmp_path / name
        path.write_text(f"// {key}\n", encoding="utf-8")
        paths[key] = path.resolve()
    return paths


class TestRevalidateOnRequest:
    @pytest.mark.asyncio
    async def test_unchanged_inputs_are_valid(self, files: dict[str, Path]) -> None:
        strategy = RevalidateOnRequest()
        assert await strategy.is_valid(unit_for(files["main"], files["dep"]))

    @pytest.mark.asyncio
    async def test_edited_dependency_is_stale(self, files: dict[str, Path]) -> None:
        strategy = RevalidateOnRequest()
        unit = unit_for(files["main"], files["dep"])
        files["dep"].write_text("// changed\n", encoding="utf-8")
        assert not await strategy.is_valid(unit)

    @pytest.mark.asyncio
    async def test_deleted_input_is_stale(self, files: dict[str, Path]) -> None:
        strategy = RevalidateOnRequest()
        unit = unit_for(files["main"], files["dep"])
        files["dep"].unlink()
        assert not await strategy.is_valid(unit)

    @pytest.mark.asyncio
    async def test_touch_without_content_change_is_valid(self, files: dict[str, Path]) -> None:
        strategy = RevalidateOnRequest()
        unit = unit_for(files["main"])
        os.utime(files["main"], None)
        assert await strategy.is_valid(unit)

    @pytest.mark.asyncio
    async def test_still_missing_input_is_valid(
        self, files: dict[str, Path], tmp_path: Path
    ) -> None:
        strategy = RevalidateOnRequest()
        unit = unit_for(files["main"], tmp_path / "later.js")
        assert unit.inputs[str(tmp_path / "later.js")] == MISSING_DIGEST
        assert await strategy.is_valid(unit)

    @pytest.mark.asyncio
    async def test_created_input_is_stale(self, files: dict[str, Path], tmp_path: Path) -> None:
        strategy = RevalidateOnRequest()
        unit = unit_for(files["main"], tmp_path / "later.js")
        (tmp_path / "later.js").write_text("// new\n", encoding="utf-8")
        assert not await strategy.is_valid(unit)


class TestFileWatchInvalidator:
    def test_track_schedules_each_directory_once(
        self, files: dict[str, Path], tmp_path: Path
    ) -> None:
        observer = MagicMock()
        invalidator = FileWatchInvalidator(TranslationCache(), observer=observer)

        invalidator.track(unit_for(files["main"], files["dep"]))
        invalidator.track(unit_for(files["other"]))

        observer.start.assert_called_once()
        observer.schedule.assert_called_once()
        assert observer.schedule.call_args.args[1] == str(tmp_path.resolve())
        assert observer.schedule.call_args.kwargs == {"recursive": False}
        assert invalidator.watched == {str(files["main"]), str(files["dep"]), str(files["other"])}

    def test_unwatchable_directory_degrades(self, files: dict[str, Path]) -> None:
        observer = MagicMock()
        observer.schedule.side_effect = OSError("inotify limit reached")
        invalidator = FileWatchInvalidator(TranslationCache(), observer=observer)

        invalidator.track(unit_for(files["main"]))

        assert str(files["main"]) in invalidator.watched

    def test_all_policy_clears_cache(self, files: dict[str, Path]) -> None:
        cache = TranslationCache()
        invalidator = FileWatchInvalidator(cache, observer=MagicMock())
        for key in ("main", "other"):
            unit = unit_for(files[key])
            cache.put(unit.path, unit)
            invalidator.track(unit)

        invalidator._dispatch(str(files["main"]))

        assert len(cache) == 0

    def test_dependents_policy(self, files: dict[str, Path]) -> None:
        cache = TranslationCache()
        invalidator = FileWatchInvalidator(cache, policy="dependents", observer=MagicMock())
        main = unit_for(files["main"], files["dep"])
        other = unit_for(files["other"])
        for unit in (main, other):
            cache.put(unit.path, unit)
            invalidator.track(unit)

        invalidator._dispatch(str(files["dep"]))

        assert main.path not in cache
        assert other.path in cache

    def test_unwatched_paths_are_ignored(self, files: dict[str, Path], tmp_path: Path) -> None:
        cache = TranslationCache()
        invalidator = FileWatchInvalidator(cache, observer=MagicMock())
        unit = unit_for(files["main"])
        cache.put(unit.path, unit)
        invalidator.track(unit)

        invalidator._dispatch(str(tmp_path / "unrelated.txt"))

        assert unit.path in cache

    @pytest.mark.asyncio
    async def test_events_are_marshalled_onto_the_loop(self, files: dict[str, Path]) -> None:
        cache = TranslationCache()
        invalidator = FileWatchInvalidator(cache, observer=MagicMock())
        unit = unit_for(files["main"])
        cache.put(unit.path, unit)
        invalidator.track(unit)

        await asyncio.to_thread(invalidator._dispatch, str(files["main"]))
        await asyncio.sleep(0)

        assert len(cache) == 0

    def test_close_stops_started_observer(self, files: dict[str, Path]) -> None:
        observer = MagicMock()
        invalidator = FileWatchInvalidator(TranslationCache(), observer=observer)
        invalidator.close()
        observer.stop.assert_not_called()

        invalidator.track(unit_for(files["main"]))
        invalidator.close()
        invalidator.close()

        observer.stop.assert_called_once()
        observer.join.assert_called_once()

    @pytest.mark.local_only
    @pytest.mark.asyncio
    async def test_real_observer_detects_edits(self, files: dict[str, Path]) -> None:
        cache = TranslationCache()
        invalidator = FileWatchInvalidator(cache)
        unit = unit_for(files["main"])
        cache.put(unit.path, unit)
        invalidator.track(unit)
        try:
            await asyncio.sleep(0.2)
            files["main"].write_text("// edited\n", encoding="utf-8")
            for _ in range(50):
                if unit.path not in cache:
                    break
                await asyncio.sleep(0.1)
            assert unit.path not in cache
        finally:
            invalidator.close()


class TestWatchHandler:
    def test_forwards_file_events(self, tmp_path: Path) -> None:
        seen: list[str] = []
        handler = _WatchHandler(seen.append)
        target = str(tmp_path / "a.js")

        handler.dispatch(FileModifiedEvent(target))
        handler.dispatch(FileDeletedEvent(target))

        assert seen == [target, target]

    def test_moves_report_both_paths(self, tmp_path: Path) -> None:
        seen: list[str] = []
        handler = _WatchHandler(seen.append)
        src, dest = str(tmp_path / "a.js.tmp"), str(tmp_path / "a.js")

        handler.dispatch(FileMovedEvent(src, dest))

        assert seen == [src, dest]

    def test_ignores_directories(self, tmp_path: Path) -> None:
        seen: list[str] = []
        handler = _WatchHandler(seen.append)
        handler.dispatch(DirModifiedEvent(str(tmp_path)))

        assert seen == []
