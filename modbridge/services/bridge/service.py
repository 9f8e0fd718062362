"""
Bridge Service - Coordinator

Responsible for:
- Wiring DeviceLink, ReconnectSupervisor, PollLoop, RegisterStore and Publisher
- Serving the WebSocket push channel and health/status endpoints
- Graceful shutdown with a forced-exit fallback
"""

import asyncio
import os
import signal
import threading
from datetime import datetime, timezone

from aiohttp import web

from modbridge import __version__
from modbridge.common.config import BridgeConfig
from modbridge.common.exceptions import CloseError
from modbridge.common.logging_setup import get_service_logger
from modbridge.services.device import (
    DeviceLink,
    PollLoop,
    ReconnectSupervisor,
    RegisterStore,
)
from modbridge.services.publish import Publisher, websocket_handler

logger = get_service_logger("bridge")


def _force_exit() -> None:
    logger.warning("Force shutdown")
    os._exit(1)


class BridgeService:
    """
    Bridge Service

    Owns one instance of every component; the Modbus session is shared
    between PollLoop and ReconnectSupervisor through this coordinator.
    """

    def __init__(self, config: BridgeConfig, link: DeviceLink | None = None):
        self.config = config

        self.link = link or DeviceLink(
            host=config.modbus.host,
            port=config.modbus.port,
            unit_id=config.modbus.unit_id,
            timeout=config.modbus.timeout_s,
        )
        self.store = RegisterStore(config.polling.total_registers)
        self.publisher = Publisher(self.store, send_timeout=config.publish.send_timeout_s)
        self.supervisor = ReconnectSupervisor(
            self.link,
            max_retries=config.reconnect.max_retries,
            retry_interval=config.reconnect.retry_interval_s,
            on_connected=self._on_connected,
        )
        self.poll_loop = PollLoop(
            link=self.link,
            supervisor=self.supervisor,
            store=self.store,
            publisher=self.publisher,
            ranges=config.polling.ranges,
            interval_seconds=config.polling.interval_s,
        )

        self._start_time = datetime.now(timezone.utc)
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._running = False
        self._stopped = False
        self._shutdown_event = asyncio.Event()
        self._force_exit_timer: threading.Timer | None = None

    async def _on_connected(self) -> None:
        await self.poll_loop.start()

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes"""
        app = web.Application()
        app.router.add_get("/ws", websocket_handler(self.publisher))
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/snapshot", self._snapshot_handler)
        app.router.add_get("/status", self._status_handler)
        app.router.add_post("/reconnect", self._reconnect_handler)
        return app

    async def start(self) -> None:
        """Start serving and polling, then wait for a shutdown signal"""
        logger.info(f"Starting Modbus bridge v{__version__}")
        self._running = True

        self._setup_signal_handlers()
        await self._start_server()

        await self.supervisor.ensure_connected()

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """
        Shut down in order: poll timer, pending retry, device session,
        publish channel, web server.
        """
        if self._stopped:
            return
        self._stopped = True
        self._running = False

        logger.info("System shutdown initiated...")
        grace = self.config.shutdown.grace_period_s

        self.poll_loop.stop()
        self.supervisor.stop()

        try:
            await asyncio.wait_for(self.link.close(), timeout=grace)
        except asyncio.TimeoutError:
            logger.error(f"Closing Modbus timed out after {grace:g}s")
        except CloseError as e:
            logger.error(f"Error closing Modbus: {e.message}")

        try:
            await asyncio.wait_for(self.publisher.close(), timeout=grace)
        except asyncio.TimeoutError:
            logger.error(f"Closing publish channel timed out after {grace:g}s")

        await self._stop_server()

        if self._force_exit_timer is not None:
            self._force_exit_timer.cancel()
            self._force_exit_timer = None

        logger.info("Bridge stopped")

    def request_shutdown(self) -> None:
        """Wake start() so the caller can run stop()"""
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(self._handle_shutdown))

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        if self._shutdown_event.is_set():
            return
        logger.info("Received shutdown signal")

        self._force_exit_timer = threading.Timer(self.config.shutdown.force_exit_s, _force_exit)
        self._force_exit_timer.daemon = True
        self._force_exit_timer.start()

        self._shutdown_event.set()

    async def _start_server(self) -> None:
        """Start the push channel / health HTTP server"""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await site.start()

        logger.info(
            f"Server running on {self.config.server.host}:{self.config.server.port}"
        )

    async def _stop_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server terminated")

    def _health_status(self) -> str:
        if self.supervisor.gave_up:
            return "failed"
        if self.link.is_open:
            return "healthy"
        return "degraded"

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        status = self._health_status()

        return web.json_response(
            {
                "status": status,
                "service": "modbridge",
                "version": __version__,
                "uptime": int(uptime),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "connection": self.supervisor.state.value,
                "subscribers": self.publisher.subscriber_count,
            },
            status=503 if status == "failed" else 200,
        )

    async def _snapshot_handler(self, request: web.Request) -> web.Response:
        """Return the current register snapshot"""
        return web.json_response(self.store.get().to_dict())

    async def _status_handler(self, request: web.Request) -> web.Response:
        """Return connection, polling and delivery statistics"""
        return web.json_response(self.get_status())

    async def _reconnect_handler(self, request: web.Request) -> web.Response:
        """Re-arm the supervisor after it gave up and try to connect"""
        self.supervisor.rearm()
        connected = await self.supervisor.ensure_connected()
        return web.json_response({
            "connected": connected,
            "connection": self.supervisor.get_stats(),
        })

    def get_status(self) -> dict:
        snapshot = self.store.get()
        return {
            "endpoint": f"{self.link.host}:{self.link.port}",
            "connection": self.supervisor.get_stats(),
            "polling": self.poll_loop.get_stats(),
            "publish": self.publisher.get_stats(),
            "snapshot": {
                "version": snapshot.version,
                "updated_at": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
                "size": self.store.size,
            },
        }


async def run(config: BridgeConfig) -> None:
    """Run the bridge until a shutdown signal arrives"""
    service = BridgeService(config)

    try:
        await service.start()
    finally:
        await service.stop()
