"""Backoff schedule and non-blocking delayed execution for delivery chains.

Retries are armed with ``loop.call_later`` timers that spawn a task when they
fire, so a long backoff chain never holds a worker idle. Timers live in
process memory: pending retries are lost if the process stops.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from hookrelay.config import DEFAULT_BACKOFF_SECONDS

logger = logging.getLogger(__name__)

DeliveryFactory = Callable[[], Awaitable[None]]


def backoff_delay(attempt_number: int, schedule: Sequence[float] = DEFAULT_BACKOFF_SECONDS) -> float:
    """Delay in seconds before retrying after ``attempt_number`` failed.

    The table is indexed by the 1-based attempt number and saturates at its
    last entry.

    Examples:
        backoff_delay(1) -> 1.0
        backoff_delay(4) -> 45.0
        backoff_delay(9) -> 135.0
    """
    if attempt_number < 1:
        raise ValueError(f"attempt_number must be >= 1, got {attempt_number}")
    if not schedule:
        raise ValueError("Backoff schedule is empty")
    return float(schedule[min(attempt_number - 1, len(schedule) - 1)])


class RetryScheduler:
    """Runs delivery attempts now or after a delay on the running event loop.

    Example:
        ```python
        scheduler = RetryScheduler()
        scheduler.spawn(lambda: engine.deliver(sub_id, payload, 1, 5))
        await scheduler.drain()
        ```
    """

    def __init__(self, backoff_seconds: Sequence[float] | None = None) -> None:
        self._backoff = list(backoff_seconds or DEFAULT_BACKOFF_SECONDS)
        self._timers: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._timer_fired: asyncio.Event | None = None
        self._closed = False

    @property
    def backoff_seconds(self) -> list[float]:
        return list(self._backoff)

    @property
    def pending_count(self) -> int:
        """Armed timers plus attempts currently running."""
        return len(self._timers) + len(self._tasks)

    def delay_for(self, attempt_number: int) -> float:
        """Backoff delay after ``attempt_number`` failed."""
        return backoff_delay(attempt_number, self._backoff)

    def spawn(self, factory: DeliveryFactory) -> None:
        """Start an attempt immediately as a background task."""
        if self._closed:
            logger.warning("Scheduler closed, dropping delivery")
            return
        task = asyncio.get_running_loop().create_task(self._run(factory))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def schedule(self, delay_seconds: float, factory: DeliveryFactory) -> None:
        """Start an attempt after ``delay_seconds`` without blocking the caller."""
        if self._closed:
            logger.warning("Scheduler closed, dropping retry")
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _fire() -> None:
            if handle is not None:
                self._timers.discard(handle)
            self.spawn(factory)
            self._wake_drain()

        handle = loop.call_later(max(delay_seconds, 0.0), _fire)
        self._timers.add(handle)

    def _wake_drain(self) -> None:
        if self._timer_fired is not None:
            self._timer_fired.set()

    async def _run(self, factory: DeliveryFactory) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception:
            # Delivery failures are recorded by the engine; anything reaching
            # here is a bug and must not kill the loop.
            logger.exception("Unhandled error in delivery task")

    async def drain(self) -> None:
        """Wait until every armed timer has fired and every task finished."""
        if self._timer_fired is None:
            self._timer_fired = asyncio.Event()
        while self._timers or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                # only timers left; sleep until one of them fires or close() runs
                self._timer_fired.clear()
                await self._timer_fired.wait()

    async def close(self) -> None:
        """Cancel armed retries and running attempts.

        In-flight chains are dropped; this mirrors losing them on restart.
        """
        self._closed = True
        dropped = len(self._timers)
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        self._wake_drain()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if dropped or tasks:
            logger.info(
                "Retry scheduler closed: %d pending retries dropped, %d attempts cancelled",
                dropped,
                len(tasks),
            )
