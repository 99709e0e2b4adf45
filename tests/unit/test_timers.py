"""Unit tests for session timers."""

import asyncio

import pytest

from speakdrill.services.session.timers import Countdown, ScheduledTask


class TestScheduledTask:
    """Tests for ScheduledTask."""

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        loop = asyncio.get_running_loop()
        fired_at = []
        start = loop.time()
        task = ScheduledTask(0.05, lambda: fired_at.append(loop.time()))

        task.start()
        await task.wait()

        assert task.fired
        assert task.done
        assert fired_at[0] - start >= 0.04

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self):
        calls = []
        task = ScheduledTask(0.05, lambda: calls.append(True))

        task.start()
        assert task.pending
        assert await task.cancel()
        await asyncio.sleep(0.08)

        assert calls == []
        assert not task.fired

    @pytest.mark.asyncio
    async def test_cancel_after_fire_returns_false(self):
        task = ScheduledTask(0.01, lambda: None)

        task.start()
        await task.wait()

        assert not await task.cancel()

    @pytest.mark.asyncio
    async def test_async_callback_awaited(self):
        done = []

        async def callback():
            await asyncio.sleep(0)
            done.append(True)

        task = ScheduledTask(0.01, callback)
        task.start()
        await task.wait()

        assert done == [True]


class TestCountdown:
    """Tests for Countdown."""

    @pytest.mark.asyncio
    async def test_ticks_until_zero(self):
        ticks = []
        countdown = Countdown(0.2, tick_seconds=0.05, on_tick=ticks.append)

        countdown.start()
        await countdown.wait()

        assert countdown.finished
        assert countdown.remaining == 0.0
        assert ticks[0] == pytest.approx(0.2, abs=0.02)
        assert ticks[-1] == 0.0
        assert ticks == sorted(ticks, reverse=True)
        assert not countdown.stopped_early

    @pytest.mark.asyncio
    async def test_remaining_before_start(self):
        assert Countdown(3.0).remaining == 3.0

    @pytest.mark.asyncio
    async def test_stop_finishes_early(self):
        countdown = Countdown(5.0, tick_seconds=0.05)

        countdown.start()
        await asyncio.sleep(0.02)
        countdown.stop()
        await asyncio.wait_for(countdown.wait(), timeout=0.5)

        assert countdown.remaining == 0.0
        assert countdown.stopped_early

    @pytest.mark.asyncio
    async def test_cancel_stops_ticking(self):
        ticks = []
        countdown = Countdown(5.0, tick_seconds=0.02, on_tick=ticks.append)

        countdown.start()
        await asyncio.sleep(0.05)
        await countdown.cancel()
        count = len(ticks)
        await asyncio.sleep(0.05)

        assert len(ticks) == count
