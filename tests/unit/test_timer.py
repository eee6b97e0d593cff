"""
Unit tests for the session countdown, per-question stopwatch and schedulers.
"""

import asyncio

import pytest

from src.selftest.timer import AsyncioScheduler, ManualScheduler, QuestionStopwatch, SessionCountdown


class TestManualScheduler:
    def test_callbacks_fire_in_deadline_order(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(2, lambda: fired.append(("b", scheduler.now())))
        scheduler.call_later(1, lambda: fired.append(("a", scheduler.now())))
        scheduler.advance(5)
        assert fired == [("a", 1), ("b", 2)]
        assert scheduler.now() == 5

    def test_cancelled_callback_never_fires(self):
        scheduler = ManualScheduler()
        fired = []
        handle = scheduler.call_later(1, lambda: fired.append(1))
        handle.cancel()
        scheduler.advance(2)
        assert fired == []
        assert scheduler.pending == 0

    def test_repeating_callback(self):
        scheduler = ManualScheduler()
        ticks = []
        scheduler.call_every(1, lambda: ticks.append(scheduler.now()))
        scheduler.advance(3.5)
        assert ticks == [1, 2, 3]
        assert scheduler.pending == 1


class TestSessionCountdown:
    def test_expires_exactly_once_at_zero(self, scheduler):
        expired = []
        ticks = []
        countdown = SessionCountdown(scheduler, 3, on_expire=lambda: expired.append(scheduler.now()), on_tick=ticks.append)
        countdown.start()

        scheduler.advance(10)

        assert ticks == [2, 1, 0]
        assert expired == [3]
        assert countdown.expired
        assert countdown.remaining_seconds == 0
        assert not countdown.running

    def test_cancel_prevents_expiry(self, scheduler):
        expired = []
        countdown = SessionCountdown(scheduler, 60, on_expire=lambda: expired.append(True))
        countdown.start()
        scheduler.advance(30)
        countdown.cancel()
        scheduler.advance(60)
        assert expired == []
        assert countdown.remaining_seconds == 30

    def test_start_is_idempotent(self, scheduler):
        countdown = SessionCountdown(scheduler, 5, on_expire=lambda: None)
        countdown.start()
        countdown.start()
        scheduler.advance(2)
        assert countdown.remaining_seconds == 3

    def test_requires_positive_duration(self, scheduler):
        with pytest.raises(ValueError):
            SessionCountdown(scheduler, 0, on_expire=lambda: None)


class TestQuestionStopwatch:
    def test_elapsed_from_first_entry(self, scheduler):
        stopwatch = QuestionStopwatch(scheduler)
        stopwatch.enter("q1")
        scheduler.advance(4.25)
        assert stopwatch.elapsed_ms("q1") == 4250

    def test_reentry_does_not_restart(self, scheduler):
        stopwatch = QuestionStopwatch(scheduler)
        stopwatch.enter("q1")
        scheduler.advance(3)
        stopwatch.enter("q2")
        scheduler.advance(2)
        stopwatch.enter("q1")
        assert stopwatch.elapsed_ms("q1") == 5000
        assert stopwatch.elapsed_ms("q2") == 2000

    def test_unknown_question_is_zero(self, scheduler):
        assert QuestionStopwatch(scheduler).elapsed_ms("missing") == 0


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_call_later_runs_on_loop(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()
        scheduler.call_later(0.01, done.set)
        await asyncio.wait_for(done.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_call_every_until_cancelled(self):
        scheduler = AsyncioScheduler()
        ticks = []
        handle = scheduler.call_every(0.01, lambda: ticks.append(1))
        await asyncio.sleep(0.055)
        handle.cancel()
        count = len(ticks)
        await asyncio.sleep(0.03)
        assert count >= 2
        assert len(ticks) == count
        assert handle.cancelled
