"""
Custom Exception Classes for the Modbus bridge

Hierarchical exception structure for error handling across components.
"""


class BridgeError(Exception):
    """Base exception for all bridge errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(BridgeError):
    """Invalid configuration - the process must not start"""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        super().__init__(f"Config Error: {message}", recoverable=False)


class DeviceError(BridgeError):
    """Remote endpoint errors"""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        recoverable: bool = True,
    ):
        self.host = host
        self.port = port
        super().__init__(message, recoverable)


class ConnectError(DeviceError):
    """Endpoint unreachable, refused or timed out"""

    def __init__(self, message: str, host: str | None = None, port: int | None = None):
        super().__init__(f"Connect Error: {message}", host, port, recoverable=True)


class CloseError(DeviceError):
    """Closing the session failed (best-effort, logged and swallowed)"""

    def __init__(self, message: str, host: str | None = None, port: int | None = None):
        super().__init__(f"Close Error: {message}", host, port, recoverable=True)


class ReadError(DeviceError):
    """Register range read failed"""

    def __init__(
        self,
        message: str,
        start: int | None = None,
        length: int | None = None,
        host: str | None = None,
        port: int | None = None,
        recoverable: bool = True,
    ):
        self.start = start
        self.length = length
        super().__init__(message, host, port, recoverable)


class PartialReadError(ReadError):
    """One range failed; the session is still usable"""

    def __init__(
        self,
        message: str,
        start: int | None = None,
        length: int | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        super().__init__(message, start, length, host, port, recoverable=True)


class FatalReadError(ReadError):
    """The session is broken and must be re-established"""

    def __init__(
        self,
        message: str,
        start: int | None = None,
        length: int | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        super().__init__(message, start, length, host, port, recoverable=False)
