"""Tests for the debounced task primitive."""

import asyncio

import pytest

from utils.debounce import DebouncedTask


class TestDebouncedTask:

    def test_rescheduling_supersedes_pending_run(self):
        async def scenario():
            task = DebouncedTask(0.01, name="test")
            ran = []

            async def work(generation):
                ran.append(generation)

            task.schedule(work)
            task.schedule(work)
            last = task.schedule(work)
            await task.wait_idle()
            return ran, last

        ran, last = asyncio.run(scenario())
        assert ran == [last]

    def test_in_flight_run_sees_it_is_stale(self):
        async def scenario():
            task = DebouncedTask(0, name="test")
            release = asyncio.Event()
            writes = []

            async def slow(generation):
                await release.wait()
                if task.is_current(generation):
                    writes.append(("slow", generation))

            async def fast(generation):
                if task.is_current(generation):
                    writes.append(("fast", generation))

            task.schedule(slow)
            await asyncio.sleep(0.01)  # slow is now in flight
            task.schedule(fast)
            await asyncio.sleep(0.01)
            release.set()
            await task.wait_idle()
            return writes

        writes = asyncio.run(scenario())
        assert [name for name, _ in writes] == ["fast"]

    def test_supersede_drops_pending_timer(self):
        async def scenario():
            task = DebouncedTask(0.01, name="test")
            ran = []

            async def work(generation):
                ran.append(generation)

            task.schedule(work)
            assert task.pending
            task.supersede()
            assert not task.pending
            await task.wait_idle()
            await asyncio.sleep(0.02)
            return ran

        assert asyncio.run(scenario()) == []

    def test_cancel_closes_the_task(self):
        async def scenario():
            task = DebouncedTask(0, name="test")
            task.cancel()

            async def work(generation):
                pass

            with pytest.raises(RuntimeError):
                task.schedule(work)
            assert not task.is_current(task.generation)

        asyncio.run(scenario())

    def test_failed_run_does_not_leave_task_busy(self):
        async def scenario():
            task = DebouncedTask(0, name="test")

            async def broken(generation):
                raise ValueError("boom")

            task.schedule(broken)
            await asyncio.wait_for(task.wait_idle(), timeout=1)
            return task.pending

        assert asyncio.run(scenario()) is False

    def test_wait_idle_returns_immediately_when_nothing_scheduled(self):
        asyncio.run(asyncio.wait_for(DebouncedTask(0).wait_idle(), timeout=1))
