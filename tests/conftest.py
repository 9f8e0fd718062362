"""Shared fakes and fixtures for modbridge tests."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable

import pytest

from modbridge.common.config import (
    BridgeConfig,
    PollSettings,
    ReconnectSettings,
    RegisterRange,
)
from modbridge.common.exceptions import ConnectError, FatalReadError, PartialReadError


class FakeDeviceLink:
    """Scripted stand-in for DeviceLink backed by an in-memory register map."""

    def __init__(self, host: str = "10.0.0.5", port: int = 502, size: int = 256) -> None:
        self.host = host
        self.port = port
        self.registers = [0] * size

        self.open = False
        self.connect_ok = True
        self.connect_outcomes: deque[bool] = deque()
        self.connect_delay = 0.0

        self.partial_starts: set[int] = set()
        self.fatal_starts: set[int] = set()
        self.read_delays: dict[int, float] = {}

        self.connect_calls = 0
        self.close_calls = 0
        self.teardowns = 0
        self.reads: list[int] = []

    @property
    def is_open(self) -> bool:
        return self.open

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        await self.close()

        ok = self.connect_outcomes.popleft() if self.connect_outcomes else self.connect_ok
        if not ok:
            raise ConnectError("Connection refused", host=self.host, port=self.port)
        self.open = True

    async def close(self) -> None:
        self.close_calls += 1
        if self.open:
            self.open = False
            self.teardowns += 1

    async def read_range(self, start: int, length: int) -> list[int]:
        self.reads.append(start)
        delay = self.read_delays.get(start)
        if delay:
            await asyncio.sleep(delay)

        if not self.open:
            raise FatalReadError("Not connected", start=start, length=length)
        if start in self.fatal_starts:
            self.open = False
            raise FatalReadError("Connection reset by peer", start=start, length=length)
        if start in self.partial_starts:
            raise PartialReadError("Modbus error: ExceptionResponse(2)", start=start, length=length)

        return list(self.registers[start:start + length])

    def drop(self) -> None:
        """Simulate the remote side going away."""
        self.open = False


class FakeObserver:
    """Observer that records every snapshot it is sent."""

    def __init__(self, observer_id: str, delay: float = 0.0) -> None:
        self.observer_id = observer_id
        self.delay = delay
        self.fail = False
        self.closed = False
        self.received: list[list[int]] = []

    async def send(self, values: list[int]) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.received.append(list(values))

    async def close(self) -> None:
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll `predicate` until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_link() -> FakeDeviceLink:
    return FakeDeviceLink()


@pytest.fixture
def bridge_config() -> BridgeConfig:
    """Two small ranges, fast retries and a poll interval long enough to never fire."""
    return BridgeConfig(
        reconnect=ReconnectSettings(max_retries=3, retry_interval_s=0.0),
        polling=PollSettings(
            interval_ms=60_000,
            total_registers=20,
            ranges=[
                RegisterRange(start=0, length=5, name="Batch A"),
                RegisterRange(start=10, length=5, name="Batch B"),
            ],
        ),
    )
