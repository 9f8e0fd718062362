"""
Bridge Service - coordinator and HTTP/WebSocket server
"""

from .service import BridgeService, run

__all__ = ["BridgeService", "run"]
