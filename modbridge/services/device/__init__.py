"""
Device Service - Modbus Communication

Responsibilities:
- Hold the single Modbus TCP session (DeviceLink)
- Re-establish it with bounded, fixed-backoff retries (ReconnectSupervisor)
- Poll register ranges on a fixed interval (PollLoop)
- Keep the latest register snapshot (RegisterStore)
"""

from .register_store import RegisterStore, Snapshot
from .modbus_client import DeviceLink
from .reconnect import ConnectionState, ReconnectSupervisor
from .poll_loop import PollLoop

__all__ = [
    "RegisterStore",
    "Snapshot",
    "DeviceLink",
    "ConnectionState",
    "ReconnectSupervisor",
    "PollLoop",
]
