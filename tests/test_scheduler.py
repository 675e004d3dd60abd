"""
Unit tests for services/scheduler_service.py.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from services.pnl_engine.reporting import Period
from services.scheduler_service import SchedulerService, next_summary_after, next_summary_run


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize("period, now, expected", [
    (Period.DAILY, _utc(2024, 3, 10, 12, 30), _utc(2024, 3, 11)),
    (Period.DAILY, _utc(2024, 3, 10), _utc(2024, 3, 11)),
    # 2024-03-10 is a Sunday
    (Period.WEEKLY, _utc(2024, 3, 10, 0, 0, 1), _utc(2024, 3, 17)),
    (Period.WEEKLY, _utc(2024, 3, 13, 8), _utc(2024, 3, 17)),
    (Period.MONTHLY, _utc(2024, 3, 10), _utc(2024, 4, 1)),
    (Period.MONTHLY, _utc(2024, 12, 31, 23, 59), _utc(2025, 1, 1)),
])
def test_next_summary_run(period, now, expected):
    assert next_summary_run(period, now) == expected


class _Backfill:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    async def backfill(self, channel, limit):
        self.calls.append((channel, limit))
        if channel == self.fail_on:
            raise RuntimeError("flood wait")
        return 2


class _Mapping:
    def source_channels(self):
        return ["-1001", "-1002", "-1003"]


def test_backfill_cycle_survives_channel_errors():
    backfill = _Backfill(fail_on="-1002")
    scheduler = SchedulerService(tracker=None, backfill=backfill, mapping=_Mapping(), backfill_limit=10)

    total = asyncio.run(scheduler.run_backfill_cycle())
    assert total == 4
    assert backfill.calls == [("-1001", 10), ("-1002", 10), ("-1003", 10)]


def test_start_and_stop_loops():
    class _Tracker:
        ticks = 0

        async def run_tick(self):
            _Tracker.ticks += 1
            raise RuntimeError("boom")

        async def generate_summary(self, period):
            return None

    async def scenario():
        scheduler = SchedulerService(_Tracker(), _Backfill(), _Mapping(), tick_interval=3600)
        scheduler.start()
        assert len(scheduler.tasks) == 5
        await asyncio.sleep(0.01)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())
    assert scheduler.tasks == []
    assert _Tracker.ticks == 1


def test_stop_cancels_tick_in_flight():
    class _SlowTracker:
        cancelled = False

        async def run_tick(self):
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                _SlowTracker.cancelled = True
                raise

        async def generate_summary(self, period):
            return None

    async def scenario():
        scheduler = SchedulerService(_SlowTracker(), None, _Mapping(), tick_interval=3600)
        scheduler.start()
        await asyncio.sleep(0.01)
        assert len(scheduler.tick_tasks) == 1
        await scheduler.stop()
        leftovers = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        return scheduler, leftovers

    scheduler, leftovers = asyncio.run(scenario())
    assert leftovers == []
    assert scheduler.tick_tasks == set()
    assert _SlowTracker.cancelled


# ── summary loop ───────────────────────────────────────────────────────────────

class _StopLoop(Exception):
    pass


class _SummaryTracker:
    def __init__(self, clock):
        self.clock = clock
        self.runs = []

    async def generate_summary(self, period):
        self.runs.append((period, self.clock()))


class TestSummaryLoop:

    def _run(self, start, wakes):
        state = {"now": start}
        wakes = list(wakes)

        async def fake_sleep(seconds):
            if not wakes:
                raise _StopLoop()
            state["now"] = wakes.pop(0)

        def clock():
            return state["now"]

        tracker = _SummaryTracker(clock)
        scheduler = SchedulerService(tracker, None, _Mapping(), clock=clock, sleep=fake_sleep)
        with pytest.raises(_StopLoop):
            asyncio.run(scheduler._summary_loop(Period.DAILY))
        return tracker.runs

    def test_early_wake_does_not_send_twice(self):
        runs = self._run(_utc(2024, 3, 10, 12), [
            _utc(2024, 3, 10, 23, 59, 59, 900000),
            _utc(2024, 3, 11, 0, 0, 0, 100000),
            _utc(2024, 3, 12, 0, 0, 1),
        ])
        assert runs == [
            (Period.DAILY, _utc(2024, 3, 11, 0, 0, 0, 100000)),
            (Period.DAILY, _utc(2024, 3, 12, 0, 0, 1)),
        ]

    def test_clock_behind_last_run_waits_for_next_day(self):
        # tras el resumen el reloj retrocede a antes de medianoche
        runs = self._run(_utc(2024, 3, 10, 23, 0), [
            _utc(2024, 3, 11),
            _utc(2024, 3, 10, 23, 59, 59),
        ])
        assert runs == [(Period.DAILY, _utc(2024, 3, 11))]


@pytest.mark.parametrize("now, last_run, expected", [
    (_utc(2024, 3, 10, 23, 59, 59), _utc(2024, 3, 11), _utc(2024, 3, 12)),
    (_utc(2024, 3, 11, 0, 0, 1), _utc(2024, 3, 11), _utc(2024, 3, 12)),
    (_utc(2024, 3, 10, 12), None, _utc(2024, 3, 11)),
])
def test_next_summary_after(now, last_run, expected):
    assert next_summary_after(Period.DAILY, now, last_run) == expected
