"""Tests for keyed delayed tasks."""

from __future__ import annotations

import asyncio

from og_explorer.timers import DelayedTaskScheduler


def test_rescheduling_replaces_the_pending_task():
    async def scenario():
        scheduler = DelayedTaskScheduler()
        fired = []
        for value in range(3):
            scheduler.schedule("key", 0.05, lambda value=value: fired.append(value))
            await asyncio.sleep(0.01)
        assert scheduler.pending("key")
        await asyncio.sleep(0.1)
        return fired, scheduler.pending("key")

    fired, pending = asyncio.run(scenario())
    assert fired == [2]
    assert not pending


def test_cancel_is_idempotent():
    async def scenario():
        scheduler = DelayedTaskScheduler()
        fired = []
        assert scheduler.cancel("missing") is False
        scheduler.schedule("a", 0.02, lambda: fired.append("a"))
        scheduler.schedule("b", 0.02, lambda: fired.append("b"))
        assert scheduler.cancel("a") is True
        assert scheduler.cancel("a") is False
        await asyncio.sleep(0.05)
        scheduler.schedule("c", 0.02, lambda: fired.append("c"))
        scheduler.cancel_all()
        scheduler.cancel_all()
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == ["b"]


def test_failing_callback_is_contained():
    async def scenario():
        scheduler = DelayedTaskScheduler()
        fired = []

        def broken():
            raise RuntimeError("boom")

        scheduler.schedule("bad", 0.0, broken)
        scheduler.schedule("good", 0.01, lambda: fired.append(True))
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == [True]
