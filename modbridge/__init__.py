"""
modbridge - Modbus TCP to WebSocket polling bridge
"""

__version__ = "1.0.0"
