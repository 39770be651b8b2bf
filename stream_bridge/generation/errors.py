from __future__ import annotations

from typing import Optional


class StreamBridgeError(RuntimeError):
    """Base class for errors raised by the generation bridge."""


class ConfigurationError(StreamBridgeError):
    pass


class TransportError(StreamBridgeError):
    """Network failure, non-2xx upstream status, or an upstream stall."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamBlockedError(StreamBridgeError):
    def __init__(self, reason: str):
        super().__init__(f"Request blocked: {reason}")
        self.reason = reason


class CacheWriteError(StreamBridgeError):
    def __init__(self, key: str, message: str):
        super().__init__(f"Failed to persist artifact {key}: {message}")
        self.key = key


class DecoderClosedError(StreamBridgeError):
    pass


class SessionClosedError(StreamBridgeError):
    pass
