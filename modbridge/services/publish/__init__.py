"""
Publish Service - Snapshot push channel

Responsibilities:
- Track connected observers
- Send each new observer the current snapshot
- Broadcast a full snapshot after every poll tick
"""

from .publisher import Observer, Publisher
from .websocket import SNAPSHOT_EVENT, WebSocketObserver, websocket_handler

__all__ = [
    "Observer",
    "Publisher",
    "SNAPSHOT_EVENT",
    "WebSocketObserver",
    "websocket_handler",
]
