#!/usr/bin/env python3
"""
modbridge - Entry Point

Polls a Modbus TCP device and pushes register snapshots to WebSocket
clients.

Usage:
    modbridge                        # Start with default config
    modbridge --config my.yaml       # Use custom config file
    modbridge --dry-run              # Validate config and exit
    modbridge --verbose              # Enable debug logging
"""

import argparse
import asyncio
import sys

from modbridge import __version__
from modbridge.common.config import BridgeConfig, find_config_path, load_config_file
from modbridge.common.exceptions import ConfigError
from modbridge.common.logging_setup import configure_all, get_service_logger

logger = get_service_logger("main")


def print_startup_banner(config: BridgeConfig, config_path: str) -> None:
    """Print startup information."""
    modbus = config.modbus
    polling = config.polling

    print()
    print("=" * 60)
    print(f"  MODBRIDGE v{__version__} - MODBUS TCP POLLING BRIDGE")
    print("=" * 60)
    print()
    print(f"  Config:     {config_path}")
    print(f"  Endpoint:   {modbus.host}:{modbus.port} (unit {modbus.unit_id}, timeout {modbus.timeout_s:g}s)")
    print(f"  Poll:       every {polling.interval_ms} ms, {polling.total_registers} registers")
    for rng in polling.ranges:
        print(f"    - {rng.name}: [{rng.start}, {rng.end})")
    print(
        f"  Reconnect:  {config.reconnect.max_retries} attempts, "
        f"{config.reconnect.retry_interval_s:g}s apart"
    )
    print(f"  Push:       ws://{config.server.host}:{config.server.port}/ws")
    print(f"  Health:     http://{config.server.host}:{config.server.port}/health")
    print()
    print("=" * 60)
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modbridge",
        description="Modbus TCP to WebSocket polling bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    modbridge                        # Start with default config
    modbridge --config my.yaml       # Use custom config file
    modbridge --dry-run              # Validate config and exit
    modbridge -v                     # Enable debug logging

Endpoints:
    GET  /ws          WebSocket snapshot stream ("modbusData" events)
    GET  /health      Health check
    GET  /snapshot    Current register snapshot
    GET  /status      Connection, polling and delivery statistics
    POST /reconnect   Re-arm reconnects after retries were exhausted
        """,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file (default: $MODBRIDGE_CONFIG, "
             "/etc/modbridge/config.yaml, ./config.yaml)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without starting",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"modbridge v{__version__}",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        # Plain text in verbose/debug mode
        configure_all("DEBUG", json_format=False)

    config_path = find_config_path(args.config)

    try:
        config = load_config_file(config_path)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for error in e.errors:
            print(f"  - {error}", file=sys.stderr)
        sys.exit(1)

    print_startup_banner(config, str(config_path))

    if args.dry_run:
        print("Dry run mode - configuration valid")
        sys.exit(0)

    # Imported late so --help and --dry-run do not pull in aiohttp/pymodbus
    from modbridge.services.bridge import run

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        print("\nStopped by user")
    except Exception as e:
        logger.critical(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
