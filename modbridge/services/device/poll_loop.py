"""
Poll Loop

Reads every configured register range on a fixed interval, merges the
results into the RegisterStore and hands the new snapshot to the Publisher.
"""

from typing import TYPE_CHECKING

from modbridge.common.config import RegisterRange
from modbridge.common.exceptions import FatalReadError, PartialReadError
from modbridge.common.logging_setup import get_service_logger, log_range_read
from modbridge.common.scheduler import ScheduledLoop
from .modbus_client import DeviceLink
from .reconnect import ReconnectSupervisor
from .register_store import RegisterStore

if TYPE_CHECKING:
    from modbridge.services.publish.publisher import Publisher

logger = get_service_logger("device.poll")


class PollLoop:
    """
    Timer-driven read-and-publish cycle.

    One tick at a time: a tick that fires while the previous one or a
    connection attempt is still running is skipped. Ranges are read in
    declaration order; a partial failure keeps that range's previous
    values, a fatal failure aborts the tick and triggers a reconnect.
    """

    def __init__(
        self,
        link: DeviceLink,
        supervisor: ReconnectSupervisor,
        store: RegisterStore,
        publisher: "Publisher",
        ranges: list[RegisterRange],
        interval_seconds: float = 2.0,
    ):
        self._link = link
        self._supervisor = supervisor
        self._store = store
        self._publisher = publisher
        self._ranges = list(ranges)

        self._scheduler = ScheduledLoop(interval_seconds, self.tick, name="poll")
        self._busy = False

        self._tick_count = 0
        self._skipped_ticks = 0
        self._partial_failures = 0
        self._fatal_failures = 0

    @property
    def is_running(self) -> bool:
        return self._scheduler.is_running

    async def start(self) -> None:
        """Start the timer (no-op if already running)"""
        if self._scheduler.is_running:
            return
        logger.info("Starting data monitoring...")
        await self._scheduler.start()

    def stop(self) -> None:
        """Cancel the timer"""
        if self._scheduler.is_running:
            logger.info("Stopping data monitoring")
        self._scheduler.stop()

    async def tick(self) -> None:
        """Run one poll cycle"""
        if self._busy or self._supervisor.is_connecting:
            self._skipped_ticks += 1
            logger.debug("Poll tick skipped (previous tick or connect in flight)")
            return

        self._busy = True
        try:
            self._tick_count += 1

            if not self._link.is_open:
                await self._supervisor.ensure_connected()
                return

            await self._read_and_publish()
        finally:
            self._busy = False

    async def _read_and_publish(self) -> None:
        updates: list[tuple[RegisterRange, list[int]]] = []
        fatal: FatalReadError | None = None

        for rng in self._ranges:
            try:
                values = await self._link.read_range(rng.start, rng.length)
            except PartialReadError as e:
                self._partial_failures += 1
                log_range_read(
                    logger, rng.name, rng.start, rng.length,
                    success=False, error=e.message,
                )
                continue
            except FatalReadError as e:
                self._fatal_failures += 1
                fatal = e
                break

            log_range_read(logger, rng.name, rng.start, rng.length)
            updates.append((rng, values))

        snapshot = self._store.merge(updates) if updates else self._store.get()

        if fatal is not None:
            logger.error(
                f"Processing Error: {fatal.message}; "
                f"committed {len(updates)}/{len(self._ranges)} ranges, reconnecting",
            )
            await self._supervisor.connection_lost(fatal)
            return

        self._publisher.broadcast(snapshot)

    def get_stats(self) -> dict:
        """Get poll statistics for observability"""
        return {
            "ranges": len(self._ranges),
            "tick_count": self._tick_count,
            "skipped_ticks": self._skipped_ticks,
            "partial_failures": self._partial_failures,
            "fatal_failures": self._fatal_failures,
            "scheduler": self._scheduler.get_stats(),
        }
