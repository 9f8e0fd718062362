"""
Reconnect Supervisor

Owns the connection state machine and the retry counter:

    Disconnected -> Connecting -> Connected -> (failure) -> Disconnected

Failed attempts are retried after a fixed backoff until max_retries
consecutive failures, after which the supervisor gives up and stays
Disconnected until an operator re-arms it.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable

from modbridge.common.exceptions import CloseError, ConnectError, DeviceError
from modbridge.common.logging_setup import get_service_logger, log_connection_state
from .modbus_client import DeviceLink

logger = get_service_logger("device.reconnect")


class ConnectionState(str, Enum):
    """Connection lifecycle states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ReconnectSupervisor:
    """
    Serializes connection attempts against a DeviceLink.

    Only one attempt is ever in flight. Calls to ensure_connected() while
    an attempt is running or a backoff retry is pending are no-ops.
    """

    def __init__(
        self,
        link: DeviceLink,
        max_retries: int = 15,
        retry_interval: float = 15.0,
        on_connected: Callable[[], Awaitable[None]] | None = None,
    ):
        self._link = link
        self.max_retries = max_retries
        self.retry_interval = retry_interval
        self._on_connected = on_connected

        self._state = ConnectionState.DISCONNECTED
        self._retry_count = 0
        self._attempt_count = 0
        self._gave_up = False
        self._stopped = False
        self._last_error: str | None = None

        self._attempt_lock = asyncio.Lock()
        self._retry_task: asyncio.Task | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def retry_count(self) -> int:
        """Consecutive failed attempts since the last successful connect"""
        return self._retry_count

    @property
    def attempt_count(self) -> int:
        """Total connection attempts made"""
        return self._attempt_count

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    @property
    def is_connecting(self) -> bool:
        return self._attempt_lock.locked()

    @property
    def pending_retry(self) -> asyncio.Task | None:
        """The scheduled backoff retry, if one is waiting"""
        return self._retry_task

    async def ensure_connected(self) -> bool:
        """
        Make sure the link is connected, attempting once if it is not.

        Returns:
            True if the link is connected when this call returns
        """
        if self._state == ConnectionState.CONNECTED and self._link.is_open:
            return True

        if self._stopped:
            return False

        if self._gave_up:
            logger.debug("Reconnect gave up; waiting for re-arm")
            return False

        if self._attempt_lock.locked() or self._retry_task is not None:
            return False

        async with self._attempt_lock:
            return await self._attempt()

    async def connection_lost(self, error: DeviceError | None = None) -> None:
        """Tear down a broken session and start reconnecting"""
        if error is not None:
            self._last_error = error.message
            logger.error(f"Connection lost: {error.message}")

        self._state = ConnectionState.DISCONNECTED
        await self._close_link()
        await self.ensure_connected()

    def rearm(self) -> None:
        """Clear the give-up condition so attempts may resume"""
        # Only a give-up resets the counter; a pending backoff keeps its count
        if not self._gave_up:
            return
        logger.info("Reconnect re-armed by operator")
        self._gave_up = False
        self._retry_count = 0

    def stop(self) -> None:
        """Cancel any pending or in-flight retry and refuse further attempts"""
        self._stopped = True
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None

    async def _attempt(self) -> bool:
        self._state = ConnectionState.CONNECTING
        self._attempt_count += 1

        try:
            await self._link.connect()
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except ConnectError as e:
            self._state = ConnectionState.DISCONNECTED
            self._last_error = e.message
            self._handle_failure(e)
            return False

        if self._stopped:
            # stop() arrived while connect() was running
            self._state = ConnectionState.DISCONNECTED
            await self._close_link()
            return False

        self._retry_count = 0
        self._last_error = None
        self._state = ConnectionState.CONNECTED
        log_connection_state(
            logger, self._state.value, self._link.host, self._link.port,
            attempt=self._attempt_count,
        )

        if self._on_connected is not None:
            await self._on_connected()

        return True

    def _handle_failure(self, error: ConnectError) -> None:
        self._retry_count += 1
        logger.error(f"Connection Error: {error.message}")

        if self._retry_count < self.max_retries:
            logger.info(
                f"Retrying in {self.retry_interval:g}s ({self._retry_count}/{self.max_retries})",
                extra={"retry_count": self._retry_count, "max_retries": self.max_retries},
            )
            self._retry_task = asyncio.create_task(
                self._retry_after(self.retry_interval),
                name="reconnect-retry",
            )
        else:
            self._gave_up = True
            logger.critical(
                f"Maximum retries reached ({self.max_retries}); polling stopped "
                f"until re-armed",
                extra={"retry_count": self._retry_count, "max_retries": self.max_retries},
            )

    async def _retry_after(self, delay: float) -> None:
        # The task stays in _retry_task through the attempt so stop() can cancel it
        try:
            await asyncio.sleep(delay)
            if self._stopped:
                return
            async with self._attempt_lock:
                await self._attempt()
        finally:
            if self._retry_task is asyncio.current_task():
                self._retry_task = None

    async def _close_link(self) -> None:
        try:
            await self._link.close()
        except CloseError as e:
            logger.warning(f"Error closing Modbus: {e.message}")

    def get_stats(self) -> dict:
        """Get connection statistics for observability"""
        return {
            "state": self._state.value,
            "retry_count": self._retry_count,
            "max_retries": self.max_retries,
            "attempt_count": self._attempt_count,
            "gave_up": self._gave_up,
            "retry_scheduled": self._retry_task is not None,
            "last_error": self._last_error,
        }
