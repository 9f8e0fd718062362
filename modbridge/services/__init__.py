"""
Bridge Services

Layered from the device outwards:
1. Device Service - Modbus session, reconnects, polling, register store
2. Publish Service - Observer registry and WebSocket push channel
3. Bridge Service - Coordinator, HTTP server, shutdown sequence
"""
