"""Error taxonomy shared by the voice and storage services."""
from __future__ import annotations

from typing import Optional


class VoiceError(Exception):
    """Base class for realtime voice failures."""


class MicrophonePermissionError(VoiceError, PermissionError):
    """Microphone access was denied or no capture device is available."""


class RealtimeConnectionError(VoiceError, ConnectionError):
    """The realtime endpoint handshake or setup failed."""


class RealtimeProtocolError(VoiceError):
    """An ``error`` event reported by the realtime endpoint."""

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class StorageError(Exception):
    """Object storage upload or URL lookup failed."""


class FileTooLargeError(StorageError):
    """The uploaded file exceeds the configured size limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File is {size} bytes; maximum file size is {limit // (1024 * 1024)}MB")
        self.size = size
        self.limit = limit
