"""
Configuration Dataclasses

Type-safe configuration structures for the bridge, loaded from YAML.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .logging_setup import get_service_logger

logger = get_service_logger("config")

# Largest holding-register count a single Modbus read may request
MAX_REGISTERS_PER_READ = 125

CONFIG_ENV_VAR = "MODBRIDGE_CONFIG"


@dataclass(frozen=True)
class RegisterRange:
    """Contiguous span of holding registers read as one request"""
    start: int
    length: int
    name: str

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass
class ModbusSettings:
    """Remote endpoint settings"""
    host: str = "127.0.0.1"
    port: int = 502
    unit_id: int = 1
    timeout_s: float = 5.0


@dataclass
class ReconnectSettings:
    """Connection retry policy"""
    max_retries: int = 15
    retry_interval_s: float = 15.0


@dataclass
class PollSettings:
    """Polling interval and register layout"""
    interval_ms: int = 2000
    total_registers: int = 70
    ranges: list[RegisterRange] = field(
        default_factory=lambda: [RegisterRange(start=0, length=70, name="Batch 1A")]
    )

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000


@dataclass
class ServerSettings:
    """Push channel / HTTP server settings"""
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class PublishSettings:
    """Observer delivery settings"""
    send_timeout_s: float = 5.0


@dataclass
class ShutdownSettings:
    """Shutdown timing"""
    grace_period_s: float = 3.0
    force_exit_s: float = 5.0


@dataclass
class BridgeConfig:
    """Complete bridge configuration"""
    modbus: ModbusSettings = field(default_factory=ModbusSettings)
    reconnect: ReconnectSettings = field(default_factory=ReconnectSettings)
    polling: PollSettings = field(default_factory=PollSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    publish: PublishSettings = field(default_factory=PublishSettings)
    shutdown: ShutdownSettings = field(default_factory=ShutdownSettings)


def load_bridge_config(data: dict[str, Any] | None) -> BridgeConfig:
    """
    Load BridgeConfig from a dictionary (e.g., parsed YAML).

    Missing sections and keys fall back to defaults. Values are not
    validated here; call validate_config() on the result.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Top-level configuration must be a mapping")

    modbus_data = data.get("modbus") or {}
    modbus = ModbusSettings(
        host=modbus_data.get("host", "127.0.0.1"),
        port=modbus_data.get("port", 502),
        unit_id=modbus_data.get("unit_id", 1),
        timeout_s=modbus_data.get("timeout_s", 5.0),
    )

    reconnect_data = data.get("reconnect") or {}
    reconnect = ReconnectSettings(
        max_retries=reconnect_data.get("max_retries", 15),
        retry_interval_s=reconnect_data.get("retry_interval_s", 15.0),
    )

    polling_data = data.get("polling") or {}
    polling = PollSettings(
        interval_ms=polling_data.get("interval_ms", 2000),
        total_registers=polling_data.get("total_registers", 70),
    )
    if "ranges" in polling_data:
        try:
            polling.ranges = [
                RegisterRange(
                    start=r["start"],
                    length=r["length"],
                    name=r.get("name", f"range[{i}]"),
                )
                for i, r in enumerate(polling_data.get("ranges") or [])
            ]
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Malformed register range: {e}")

    server_data = data.get("server") or {}
    server = ServerSettings(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 3001),
    )

    publish_data = data.get("publish") or {}
    publish = PublishSettings(
        send_timeout_s=publish_data.get("send_timeout_s", 5.0),
    )

    shutdown_data = data.get("shutdown") or {}
    shutdown = ShutdownSettings(
        grace_period_s=shutdown_data.get("grace_period_s", 3.0),
        force_exit_s=shutdown_data.get("force_exit_s", 5.0),
    )

    return BridgeConfig(
        modbus=modbus,
        reconnect=reconnect,
        polling=polling,
        server=server,
        publish=publish,
        shutdown=shutdown,
    )


def find_config_path(explicit: str | None = None) -> Path:
    """Resolve the configuration file path"""
    if explicit:
        return Path(explicit)

    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)

    possible_paths = [
        Path("/etc/modbridge/config.yaml"),
        Path.cwd() / "config.yaml",
    ]
    for path in possible_paths:
        if path.exists():
            return path

    return possible_paths[-1]


def load_config_file(path: str | Path) -> BridgeConfig:
    """
    Read, parse and validate a YAML configuration file.

    Raises:
        ConfigError: file missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Cannot load {path}: {e}")

    config = load_bridge_config(data)
    for warning in validate_config(config):
        logger.warning(warning)
    return config


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: BridgeConfig) -> list[str]:
    """
    Validate a configuration, collecting every problem.

    Returns:
        List of warnings (non-fatal findings such as overlapping ranges)

    Raises:
        ConfigError: if any error was found
    """
    errors: list[str] = []
    warnings: list[str] = []

    errors.extend(_validate_modbus(config.modbus))
    errors.extend(_validate_reconnect(config.reconnect))
    range_errors, range_warnings = _validate_polling(config.polling)
    errors.extend(range_errors)
    warnings.extend(range_warnings)

    if not _is_int(config.server.port) or not 1 <= config.server.port <= 65535:
        errors.append("server.port must be 1-65535")

    if not _is_number(config.publish.send_timeout_s) or config.publish.send_timeout_s <= 0:
        errors.append("publish.send_timeout_s must be positive")

    if not _is_number(config.shutdown.grace_period_s) or config.shutdown.grace_period_s <= 0:
        errors.append("shutdown.grace_period_s must be positive")
    if not _is_number(config.shutdown.force_exit_s) or config.shutdown.force_exit_s <= 0:
        errors.append("shutdown.force_exit_s must be positive")

    if errors:
        raise ConfigError(f"{len(errors)} invalid setting(s)", errors)

    return warnings


def _validate_modbus(modbus: ModbusSettings) -> list[str]:
    errors = []

    if not modbus.host or not isinstance(modbus.host, str):
        errors.append("modbus.host is required")
    if not _is_int(modbus.port) or not 1 <= modbus.port <= 65535:
        errors.append("modbus.port must be 1-65535")
    if not _is_int(modbus.unit_id) or not 0 <= modbus.unit_id <= 247:
        errors.append("modbus.unit_id must be 0-247")
    if not _is_number(modbus.timeout_s) or modbus.timeout_s <= 0:
        errors.append("modbus.timeout_s must be positive")

    return errors


def _validate_reconnect(reconnect: ReconnectSettings) -> list[str]:
    errors = []

    if not _is_int(reconnect.max_retries) or reconnect.max_retries < 1:
        errors.append("reconnect.max_retries must be at least 1")
    if not _is_number(reconnect.retry_interval_s) or reconnect.retry_interval_s <= 0:
        errors.append("reconnect.retry_interval_s must be positive")

    return errors


def _validate_polling(polling: PollSettings) -> tuple[list[str], list[str]]:
    errors = []
    warnings = []

    if not _is_int(polling.interval_ms) or polling.interval_ms <= 0:
        errors.append("polling.interval_ms must be positive")

    total = polling.total_registers
    if not _is_int(total) or total < 1:
        errors.append("polling.total_registers must be at least 1")
        total = None

    if not polling.ranges:
        errors.append("polling.ranges must contain at least one range")
        return errors, warnings

    seen_names: set[str] = set()
    for i, rng in enumerate(polling.ranges):
        label = rng.name if isinstance(rng.name, str) and rng.name else f"range[{i}]"

        if not isinstance(rng.name, str) or not rng.name:
            errors.append(f"{label}: name is required")
        elif rng.name in seen_names:
            errors.append(f"{label}: duplicate range name")
        else:
            seen_names.add(rng.name)

        if not _is_int(rng.start) or rng.start < 0:
            errors.append(f"{label}: start must be a non-negative integer")
            continue
        if not _is_int(rng.length) or not 1 <= rng.length <= MAX_REGISTERS_PER_READ:
            errors.append(f"{label}: length must be 1-{MAX_REGISTERS_PER_READ}")
            continue
        if total is not None and rng.end > total:
            errors.append(
                f"{label}: [{rng.start}, {rng.end}) exceeds total_registers ({total})"
            )

    # Overlap is allowed; the later declaration wins when merging
    valid = [
        r for r in polling.ranges
        if _is_int(r.start) and _is_int(r.length) and r.start >= 0 and r.length >= 1
    ]
    for i, first in enumerate(valid):
        for second in valid[i + 1:]:
            if first.start < second.end and second.start < first.end:
                warnings.append(f"Ranges {first.name} and {second.name} overlap")

    return errors, warnings
