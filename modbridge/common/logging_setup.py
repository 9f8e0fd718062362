"""
Structured Logging Setup

Every component logs through a `modbridge.<component>` logger. Output is
one JSON object per line by default, plain text for interactive use.

Environment:
    MODBRIDGE_LOG_LEVEL   DEBUG, INFO (default), WARNING, ERROR, CRITICAL
    MODBRIDGE_LOG_FORMAT  json (default) or text
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LOG_LEVEL_ENV = "MODBRIDGE_LOG_LEVEL"
LOG_FORMAT_ENV = "MODBRIDGE_LOG_FORMAT"

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s | %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# LogRecord attributes that never go into the JSON payload
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "service"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record; fields passed via `extra=` are merged in"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": record.__dict__.get("service", "unknown"),
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Stamps the component name on every record"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**kwargs.get("extra", {}), "service": self.extra["service"]}
        return msg, kwargs


def _make_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT))
    return handler


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the `modbridge.<service_name>` logger.

    Calling it again for the same component replaces the handler, so
    level or format changes never duplicate output.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger(f"modbridge.{service_name}")
    logger.setLevel(level)
    logger.handlers[:] = [_make_handler(level, json_format)]
    logger.propagate = False
    return logger


def _settings_from_env() -> tuple[str, bool]:
    log_level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    json_format = os.environ.get(LOG_FORMAT_ENV, "json").lower() == "json"
    return log_level, json_format


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Component logger configured from the environment"""
    log_level, json_format = _settings_from_env()
    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def configure_all(log_level: str, json_format: bool) -> None:
    """
    Re-apply level and format to every modbridge logger created so far.

    Module-level loggers are created at import time from the environment;
    the CLI calls this after parsing --verbose.
    """
    os.environ[LOG_LEVEL_ENV] = log_level
    os.environ[LOG_FORMAT_ENV] = "json" if json_format else "text"

    for name in list(logging.root.manager.loggerDict):
        if name.startswith("modbridge."):
            setup_logging(name[len("modbridge."):], log_level, json_format)


def log_range_read(
    logger: logging.Logger | logging.LoggerAdapter,
    range_name: str,
    start: int,
    length: int,
    success: bool = True,
    error: str | None = None,
) -> None:
    """Log a register range read operation"""
    if success:
        logger.debug(
            f"Read {range_name} [{start}, {start + length})",
            extra={"range": range_name, "start": start, "length": length},
        )
    else:
        logger.error(
            f"Read Error [{range_name}]: {error}",
            extra={"range": range_name, "start": start, "length": length},
        )


def log_connection_state(
    logger: logging.Logger | logging.LoggerAdapter,
    state: str,
    host: str,
    port: int,
    retry_count: int = 0,
    **context: Any,
) -> None:
    """Log a connection state transition"""
    logger.info(
        f"Connection {state}: {host}:{port} (retries={retry_count})",
        extra={"state": state, "host": host, "port": port, "retry_count": retry_count, **context},
    )
