"""
Common Utilities

Shared modules used across all components:
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed-interval loop with skip-if-busy semantics
"""

from .config import (
    BridgeConfig,
    ModbusSettings,
    ReconnectSettings,
    PollSettings,
    ServerSettings,
    PublishSettings,
    ShutdownSettings,
    RegisterRange,
    MAX_REGISTERS_PER_READ,
    load_bridge_config,
    load_config_file,
    find_config_path,
    validate_config,
)
from .exceptions import (
    BridgeError,
    ConfigError,
    DeviceError,
    ConnectError,
    CloseError,
    ReadError,
    PartialReadError,
    FatalReadError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    configure_all,
    log_range_read,
    log_connection_state,
)
from .scheduler import ScheduledLoop

__all__ = [
    # Config
    "BridgeConfig",
    "ModbusSettings",
    "ReconnectSettings",
    "PollSettings",
    "ServerSettings",
    "PublishSettings",
    "ShutdownSettings",
    "RegisterRange",
    "MAX_REGISTERS_PER_READ",
    "load_bridge_config",
    "load_config_file",
    "find_config_path",
    "validate_config",
    # Exceptions
    "BridgeError",
    "ConfigError",
    "DeviceError",
    "ConnectError",
    "CloseError",
    "ReadError",
    "PartialReadError",
    "FatalReadError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "configure_all",
    "log_range_read",
    "log_connection_state",
    # Scheduling
    "ScheduledLoop",
]
