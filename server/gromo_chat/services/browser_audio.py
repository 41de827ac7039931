"""Browser-side microphone and speaker exposed over the voice websocket.

The browser captures PCM16 mono audio at 24kHz and sends it as int16 sample
arrays; assistant audio goes back base64-encoded. Outbound messages are handed
to ``send`` (typically an outbox queue drained by the websocket writer).
"""
from __future__ import annotations

import asyncio
import base64
import logging
import struct
from typing import Any, AsyncIterator, Callable, Optional, Sequence

from .errors import MicrophonePermissionError

logger = logging.getLogger(__name__)

SendMessage = Callable[[dict[str, Any]], None]

MICROPHONE_GRANTED = "granted"
_FRAME_QUEUE_SIZE = 256


class BrowserMicrophone:
    """Audio source fed by ``audio`` messages from the browser."""

    def __init__(self, *, max_frames: int = _FRAME_QUEUE_SIZE) -> None:
        self._frames: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=max_frames)
        self._permission: Optional[str] = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def grant(self, permission: Optional[str]) -> None:
        self._permission = permission

    async def open(self) -> None:
        if self._permission != MICROPHONE_GRANTED:
            detail = self._permission or "not requested"
            raise MicrophonePermissionError(f"Microphone access denied ({detail})")
        # Drop anything left over from a previous session.
        while not self._frames.empty():
            self._frames.get_nowait()
        self._open = True

    def push(self, pcm: bytes) -> None:
        if not self._open or not pcm:
            return
        try:
            self._frames.put_nowait(pcm)
        except asyncio.QueueFull:
            logger.debug("Microphone queue full; dropping %d bytes", len(pcm))

    async def frames(self) -> AsyncIterator[bytes]:
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            yield frame

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        while not self._frames.empty():
            self._frames.get_nowait()
        self._frames.put_nowait(None)


class BrowserSpeaker:
    """Audio sink that forwards assistant audio to the browser."""

    def __init__(self, send: SendMessage) -> None:
        self._send = send

    async def play(self, pcm: bytes) -> None:
        self._send({"type": "audio", "audio": base64.b64encode(pcm).decode("utf-8")})

    async def close(self) -> None:
        self._send({"type": "audio_end"})


class BrowserAudioBridge:
    """Pairs the browser microphone and speaker for one websocket."""

    def __init__(self, send: SendMessage) -> None:
        self.source = BrowserMicrophone()
        self.sink = BrowserSpeaker(send)

    def grant_microphone(self, permission: Optional[str]) -> None:
        self.source.grant(permission)

    def push_samples(self, samples: Sequence[int]) -> None:
        if not samples:
            return
        # Convert int16 array to bytes
        try:
            pcm = struct.pack(f"<{len(samples)}h", *samples)
        except struct.error:
            logger.warning("Dropping malformed audio frame of %d samples", len(samples))
            return
        self.source.push(pcm)
