"""Tests for cache/inflight.py - per-key coalescing."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from systranslate.cache.inflight import InFlightCompilations


class TestInFlightCompilations:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self) -> None:
        inflight: InFlightCompilations[str] = InFlightCompilations()
        calls = 0
        release = asyncio.Event()

        async def work() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            return "done"

        waiters = [asyncio.create_task(inflight.run("a", work)) for _ in range(5)]
        await asyncio.sleep(0)
        assert inflight.running("a")
        release.set()

        assert await asyncio.gather(*waiters) == ["done"] * 5
        assert calls == 1
        assert not inflight.running("a")
        assert len(inflight) == 0

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        inflight: InFlightCompilations[str] = InFlightCompilations()
        started: list[str] = []

        def factory(key: str) -> Callable[[], Awaitable[str]]:
            async def work() -> str:
                started.append(key)
                await asyncio.sleep(0)
                return key

            return work

        results = await asyncio.gather(
            inflight.run("a", factory("a")), inflight.run("b", factory("b"))
        )
        assert results == ["a", "b"]
        assert sorted(started) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_exception_reaches_every_waiter(self) -> None:
        inflight: InFlightCompilations[str] = InFlightCompilations()
        calls = 0

        async def boom() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            raise RuntimeError("compiler crashed")

        results = await asyncio.gather(
            inflight.run("a", boom), inflight.run("a", boom), return_exceptions=True
        )
        assert calls == 1
        assert all(isinstance(result, RuntimeError) for result in results)
        assert len(inflight) == 0

    @pytest.mark.asyncio
    async def test_next_call_after_completion_runs_again(self) -> None:
        inflight: InFlightCompilations[int] = InFlightCompilations()
        counter = 0

        async def work() -> int:
            nonlocal counter
            counter += 1
            return counter

        assert await inflight.run("a", work) == 1
        assert await inflight.run("a", work) == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_work(self) -> None:
        inflight: InFlightCompilations[str] = InFlightCompilations()
        release = asyncio.Event()

        async def work() -> str:
            await release.wait()
            return "finished"

        impatient = asyncio.create_task(inflight.run("a", work))
        patient = asyncio.create_task(inflight.run("a", work))
        await asyncio.sleep(0)

        impatient.cancel()
        with pytest.raises(asyncio.CancelledError):
            await impatient

        release.set()
        assert await patient == "finished"
