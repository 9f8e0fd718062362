"""
Fixed-Interval Scheduler

Provides ScheduledLoop, a cancellable periodic task that fires a callback
every `interval` seconds, measured against the fixed schedule rather
than against when the previous callback finished.

Callbacks never overlap: a callback that runs past one or more boundaries
causes those boundaries to be skipped, not queued.

Usage:
    async def tick():
        ...

    loop = ScheduledLoop(2.0, tick, name="poll")
    await loop.start()

    # Later:
    loop.stop()
"""

import asyncio
from typing import Callable, Awaitable
from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Interval scheduler with skip-if-busy semantics.

    The first callback fires one interval after start(). Execution time
    does not shift the schedule; missed boundaries are counted in
    `skipped_count`.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None

        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop in a background task (no-op if already running)."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"scheduled:{self.name}")

    def stop(self) -> None:
        """Cancel the loop. An in-flight callback is cancelled with it."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        self._next_run = loop.time() + self.interval

        while self._running:
            sleep_duration = self._next_run - loop.time()
            if sleep_duration > 0:
                try:
                    await asyncio.sleep(sleep_duration)
                except asyncio.CancelledError:
                    break

            if not self._running:
                break

            self._last_drift_ms = max(0.0, loop.time() - self._next_run) * 1000

            try:
                start = loop.time()
                await self.callback()
                self._last_execution_time = loop.time() - start
                self._execution_count += 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Scheduled callback '{self.name}' error: {e}")

            # Skip boundaries that passed while the callback ran
            now = loop.time()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # The first step is the boundary we just served
            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)"
                )

    @property
    def skipped_count(self) -> int:
        """Number of intervals skipped because a callback overran."""
        return self._skipped_count

    @property
    def execution_count(self) -> int:
        return self._execution_count

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "skipped_count": self._skipped_count,
            "drift_last_ms": round(self._last_drift_ms, 1),
            "last_execution_s": round(self._last_execution_time, 3),
        }
