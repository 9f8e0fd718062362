"""
Device Link

Owns the single Modbus TCP session to the remote endpoint. Wrapper around
pymodbus AsyncModbusTcpClient that classifies read failures as partial
(session still usable) or fatal (session must be re-established).
"""

import asyncio

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ConnectionException, ModbusException, ModbusIOException

from modbridge.common.exceptions import (
    CloseError,
    ConnectError,
    FatalReadError,
    PartialReadError,
)
from modbridge.common.logging_setup import get_service_logger

logger = get_service_logger("device.link")


class DeviceLink:
    """
    Single-session Modbus TCP link.

    Handles:
    - One transport session at a time (connect closes the previous one)
    - Idempotent close
    - Holding register range reads bounded by an explicit timeout
    - Serialized access: connect, close and reads never interleave

    The link does not reconnect on its own; ReconnectSupervisor decides
    when to call connect().
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout = timeout

        self._client: AsyncModbusTcpClient | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._client is not None and self._client.connected

    async def connect(self) -> None:
        """
        Open a new session, closing any existing one first.

        Raises:
            ConnectError: endpoint unreachable, refused or timed out
        """
        async with self._lock:
            try:
                self._close_locked()
            except CloseError as e:
                logger.warning(f"Error closing previous session: {e.message}")

            # reconnect_delay=0 turns off pymodbus background reconnects;
            # ReconnectSupervisor is the only thing that reopens the session
            client = AsyncModbusTcpClient(
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                retries=0,
                reconnect_delay=0,
            )

            try:
                connected = await asyncio.wait_for(client.connect(), timeout=self.timeout)
            except asyncio.CancelledError:
                client.close()
                raise
            except asyncio.TimeoutError:
                client.close()
                raise ConnectError(
                    f"Timed out after {self.timeout}s connecting to {self.host}:{self.port}",
                    host=self.host,
                    port=self.port,
                )
            except (ModbusException, OSError) as e:
                client.close()
                raise ConnectError(
                    f"{self.host}:{self.port}: {e}",
                    host=self.host,
                    port=self.port,
                ) from e

            if not connected or not client.connected:
                client.close()
                raise ConnectError(
                    f"Failed to connect to {self.host}:{self.port}",
                    host=self.host,
                    port=self.port,
                )

            self._client = client
            logger.info(
                f"Modbus connected to {self.host}:{self.port} (unit {self.unit_id})",
                extra={"host": self.host, "port": self.port, "unit_id": self.unit_id},
            )

    async def close(self) -> None:
        """
        Close the session. Safe to call when already closed.

        Raises:
            CloseError: the underlying transport failed to close
        """
        async with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._client is None:
            return

        client = self._client
        self._client = None

        try:
            client.close()
        except Exception as e:
            raise CloseError(
                f"{self.host}:{self.port}: {e}",
                host=self.host,
                port=self.port,
            ) from e

        logger.info(f"Modbus connection to {self.host}:{self.port} closed")

    async def read_range(self, start: int, length: int) -> list[int]:
        """
        Read `length` holding registers starting at `start`.

        Returns:
            Exactly `length` register values

        Raises:
            PartialReadError: this range failed but the session is usable
            FatalReadError: the session is broken
        """
        async with self._lock:
            client = self._client
            if client is None or not client.connected:
                raise FatalReadError(
                    f"Not connected to {self.host}:{self.port}",
                    start=start,
                    length=length,
                    host=self.host,
                    port=self.port,
                )

            try:
                response = await asyncio.wait_for(
                    client.read_holding_registers(
                        address=start,
                        count=length,
                        device_id=self.unit_id,
                    ),
                    timeout=self.timeout,
                )
            except ConnectionException as e:
                raise self._fatal(f"Connection lost: {e}", start, length) from e
            except (asyncio.TimeoutError, ModbusIOException) as e:
                reason = str(e) or f"timed out after {self.timeout}s"
                if not client.connected:
                    raise self._fatal(f"Connection lost: {reason}", start, length) from e
                raise PartialReadError(
                    f"Read timeout: {reason}",
                    start=start,
                    length=length,
                    host=self.host,
                    port=self.port,
                ) from e
            except ModbusException as e:
                raise PartialReadError(
                    f"Modbus exception: {e}",
                    start=start,
                    length=length,
                    host=self.host,
                    port=self.port,
                ) from e
            except OSError as e:
                raise self._fatal(f"Transport error: {e}", start, length) from e

            if response.isError():
                raise PartialReadError(
                    f"Modbus error: {response}",
                    start=start,
                    length=length,
                    host=self.host,
                    port=self.port,
                )

            registers = list(response.registers)
            if len(registers) != length:
                raise PartialReadError(
                    f"Expected {length} registers, got {len(registers)}",
                    start=start,
                    length=length,
                    host=self.host,
                    port=self.port,
                )

            return registers

    def _fatal(self, message: str, start: int, length: int) -> FatalReadError:
        return FatalReadError(
            message,
            start=start,
            length=length,
            host=self.host,
            port=self.port,
        )
