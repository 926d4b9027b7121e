import asyncio

from quizparty.core.clock import AsyncioScheduler, GameTimer, ManualScheduler
from quizparty.core.rulesets import format_elapsed


def test_manual_scheduler_runs_due_callbacks_in_order():
    scheduler = ManualScheduler()
    calls = []
    scheduler.call_later(2.0, lambda: calls.append("late"))
    scheduler.call_later(1.0, lambda: calls.append("early"))
    cancelled = scheduler.call_later(1.5, lambda: calls.append("cancelled"))
    cancelled.cancel()

    assert scheduler.advance(1.0) == 1
    assert calls == ["early"]
    assert scheduler.pending == 1
    assert scheduler.advance(5.0) == 1
    assert calls == ["early", "late"]
    assert scheduler.now == 6.0


def test_callbacks_scheduled_during_advance_run_when_due():
    scheduler = ManualScheduler()
    calls = []
    scheduler.call_later(1.0, lambda: scheduler.call_later(1.0, lambda: calls.append("chained")))
    scheduler.advance(2.0)
    assert calls == ["chained"]


def test_timer_start_and_stop_are_idempotent():
    scheduler = ManualScheduler()
    ticks = []
    timer = GameTimer(scheduler, on_tick=ticks.append)
    timer.start()
    timer.start()
    scheduler.advance(3)
    assert timer.elapsed == 3
    assert ticks == [1, 2, 3]

    timer.stop()
    timer.stop()
    assert not timer.running
    scheduler.advance(3)
    assert timer.elapsed == 3


def test_paused_timer_does_not_accumulate():
    scheduler = ManualScheduler()
    timer = GameTimer(scheduler)
    timer.start()
    scheduler.advance(2)
    timer.pause()
    scheduler.advance(10)
    assert timer.elapsed == 2
    timer.resume()
    scheduler.advance(1)
    assert timer.elapsed == 3


def test_reset_restores_elapsed_and_stops():
    scheduler = ManualScheduler()
    timer = GameTimer(scheduler)
    timer.start()
    timer.reset(42)
    assert timer.elapsed == 42
    assert not timer.running


def test_format_elapsed():
    assert format_elapsed(0) == "00:00"
    assert format_elapsed(75) == "01:15"
    assert format_elapsed(3599) == "59:59"


def test_asyncio_scheduler_runs_callbacks_on_the_loop():
    async def run():
        fired = asyncio.Event()
        AsyncioScheduler().call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)
        return fired.is_set()

    assert asyncio.run(run())
