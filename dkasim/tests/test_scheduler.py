"""
Tests for the asyncio tick scheduler.
"""

import asyncio

import pytest

from dkasim.core.scheduler import AsyncioTickScheduler


@pytest.mark.asyncio
async def test_schedule_calls_back_repeatedly():
    scheduler = AsyncioTickScheduler()
    calls = []

    scheduler.schedule("session-1", lambda: calls.append(1), 0.01)
    await asyncio.sleep(0.06)
    scheduler.cancel("session-1")

    assert len(calls) >= 2
    assert not scheduler.is_scheduled("session-1")


@pytest.mark.asyncio
async def test_cancel_stops_ticks():
    scheduler = AsyncioTickScheduler()
    calls = []

    scheduler.schedule("session-1", lambda: calls.append(1), 0.01)
    await asyncio.sleep(0.03)
    scheduler.cancel("session-1")
    count = len(calls)
    await asyncio.sleep(0.03)

    assert len(calls) == count


@pytest.mark.asyncio
async def test_second_schedule_is_ignored():
    scheduler = AsyncioTickScheduler()
    first, second = [], []

    scheduler.schedule("session-1", lambda: first.append(1), 0.01)
    scheduler.schedule("session-1", lambda: second.append(1), 0.01)
    await asyncio.sleep(0.03)
    scheduler.cancel_all()

    assert first
    assert second == []


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_loop():
    scheduler = AsyncioTickScheduler()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("tick failure")

    scheduler.schedule("session-1", flaky, 0.01)
    await asyncio.sleep(0.06)
    scheduler.cancel_all()

    assert len(calls) >= 2


def test_cancel_unknown_session_is_noop():
    scheduler = AsyncioTickScheduler()
    scheduler.cancel("missing")
    assert not scheduler.is_scheduled("missing")
