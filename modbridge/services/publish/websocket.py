"""
WebSocket Push Channel

Adapts aiohttp WebSocket connections to the Publisher's Observer interface
and serves the /ws endpoint.
"""

import itertools

from aiohttp import WSCloseCode, WSMsgType, web

from modbridge.common.logging_setup import get_service_logger
from .publisher import Publisher

logger = get_service_logger("publish.ws")

# Event name carried in every snapshot message
SNAPSHOT_EVENT = "modbusData"

_observer_ids = itertools.count(1)


class WebSocketObserver:
    """Observer backed by one WebSocket connection"""

    def __init__(self, ws: web.WebSocketResponse, peer: str | None = None):
        self.ws = ws
        self.peer = peer or "unknown"
        self.observer_id = f"ws-{next(_observer_ids)}"

    async def send(self, values: list[int]) -> None:
        if self.ws.closed:
            raise ConnectionResetError("WebSocket is closed")
        await self.ws.send_json({"event": SNAPSHOT_EVENT, "data": values})

    async def close(self) -> None:
        if not self.ws.closed:
            await self.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")


def websocket_handler(publisher: Publisher, heartbeat: float = 30.0):
    """Build the aiohttp handler that subscribes each connection"""

    async def handler(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=heartbeat)
        await ws.prepare(request)

        observer = WebSocketObserver(ws, peer=request.remote)
        if not await publisher.subscribe(observer):
            await ws.close()
            return ws

        try:
            async for msg in ws:
                # Push-only channel; client messages are ignored
                if msg.type == WSMsgType.ERROR:
                    logger.warning(
                        f"WebSocket error from {observer.peer}: {ws.exception()}"
                    )
        finally:
            await publisher.unsubscribe(observer)

        return ws

    return handler
