"""Tests for the retry scheduler and backoff table."""

import asyncio

import pytest

from hookrelay.config import DEFAULT_BACKOFF_SECONDS
from hookrelay.webhooks.retry import RetryScheduler, backoff_delay


class TestBackoffDelay:
    """Tests for the fixed backoff table."""

    def test_default_table(self):
        assert DEFAULT_BACKOFF_SECONDS == [1.0, 5.0, 15.0, 45.0, 135.0]
        assert [backoff_delay(n) for n in range(1, 6)] == [1.0, 5.0, 15.0, 45.0, 135.0]

    def test_saturates_at_last_entry(self):
        assert backoff_delay(6) == 135.0
        assert backoff_delay(50) == 135.0

    def test_custom_table(self):
        assert backoff_delay(1, [2.0]) == 2.0
        assert backoff_delay(3, [2.0]) == 2.0

    def test_attempt_number_must_be_positive(self):
        with pytest.raises(ValueError):
            backoff_delay(0)

    def test_empty_table_rejected(self):
        with pytest.raises(ValueError):
            backoff_delay(1, [])


class TestRetryScheduler:
    """Tests for non-blocking execution."""

    async def test_spawn_runs_in_background(self):
        scheduler = RetryScheduler()
        ran = asyncio.Event()

        async def job():
            ran.set()

        scheduler.spawn(job)
        assert scheduler.pending_count == 1
        await scheduler.drain()

        assert ran.is_set()
        assert scheduler.pending_count == 0

    async def test_schedule_does_not_block_caller(self):
        scheduler = RetryScheduler()
        calls: list[str] = []

        async def job():
            calls.append("retry")

        scheduler.schedule(0.01, job)
        calls.append("caller")
        assert scheduler.pending_count == 1

        await scheduler.drain()
        assert calls == ["caller", "retry"]

    async def test_drain_follows_chained_schedules(self):
        scheduler = RetryScheduler()
        calls: list[int] = []

        async def step(n: int):
            calls.append(n)
            if n < 3:
                scheduler.schedule(0, lambda: step(n + 1))

        scheduler.spawn(lambda: step(1))
        await scheduler.drain()

        assert calls == [1, 2, 3]

    async def test_failing_job_does_not_break_scheduler(self):
        scheduler = RetryScheduler()
        calls: list[str] = []

        async def broken():
            raise RuntimeError("boom")

        async def healthy():
            calls.append("ok")

        scheduler.spawn(broken)
        scheduler.spawn(healthy)
        await scheduler.drain()

        assert calls == ["ok"]

    async def test_drain_waits_for_delayed_timer(self):
        scheduler = RetryScheduler()
        calls: list[str] = []

        async def job():
            calls.append("ran")

        scheduler.schedule(0.05, job)
        await asyncio.wait_for(scheduler.drain(), timeout=2)

        assert calls == ["ran"]
        assert scheduler.pending_count == 0

    async def test_close_wakes_waiting_drain(self):
        scheduler = RetryScheduler()

        async def job():
            raise AssertionError("must not run")

        scheduler.schedule(60, job)
        drain = asyncio.create_task(scheduler.drain())
        await asyncio.sleep(0.01)
        assert not drain.done()

        await scheduler.close()
        await asyncio.wait_for(drain, timeout=1)

        assert scheduler.pending_count == 0

    async def test_close_cancels_pending_retries(self):
        scheduler = RetryScheduler()
        calls: list[str] = []

        async def job():
            calls.append("ran")

        scheduler.schedule(60, job)
        await scheduler.close()
        await asyncio.sleep(0)

        assert calls == []
        assert scheduler.pending_count == 0

    async def test_close_cancels_running_tasks(self):
        scheduler = RetryScheduler()
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(60)

        scheduler.spawn(slow)
        await started.wait()
        await scheduler.close()

        assert scheduler.pending_count == 0

    async def test_closed_scheduler_drops_new_work(self):
        scheduler = RetryScheduler()
        await scheduler.close()

        async def job():
            raise AssertionError("must not run")

        scheduler.spawn(job)
        scheduler.schedule(0, job)
        assert scheduler.pending_count == 0

    def test_delay_for_uses_configured_table(self):
        scheduler = RetryScheduler([3.0, 7.0])
        assert scheduler.delay_for(1) == 3.0
        assert scheduler.delay_for(2) == 7.0
        assert scheduler.delay_for(9) == 7.0
        assert scheduler.backoff_seconds == [3.0, 7.0]
