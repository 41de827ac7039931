"""Realtime voice session transport.

A :class:`TransportSession` couples one microphone source, one playback sink
and one duplex connection to the hosted realtime endpoint. It streams captured
audio out, plays assistant audio back, and hands every inbound event to a
single handler in arrival order.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from .errors import MicrophonePermissionError, RealtimeConnectionError
from .realtime_events import decode_audio_delta, is_audio_delta

logger = logging.getLogger(__name__)

# A handler returning False marks the event stale; its audio is not played.
EventHandler = Callable[[dict[str, Any]], Optional[bool]]
CloseHandler = Callable[[], None]


class RealtimeConnection(Protocol):
    async def send_audio(self, audio: bytes) -> None: ...

    def events(self) -> AsyncIterator[dict[str, Any]]: ...

    async def close(self) -> None: ...


class RealtimeConnector(Protocol):
    async def connect(self) -> RealtimeConnection: ...


class AudioSource(Protocol):
    async def open(self) -> None: ...

    def frames(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None: ...


class AudioSink(Protocol):
    async def play(self, pcm: bytes) -> None: ...

    async def close(self) -> None: ...


class TransportSession:
    """One live realtime voice session. Instances are single-use."""

    def __init__(
        self,
        connector: RealtimeConnector,
        source: AudioSource,
        sink: AudioSink,
        handler: EventHandler,
        *,
        on_close: Optional[CloseHandler] = None,
        connect_timeout: Optional[float] = None,
    ) -> None:
        self._connector = connector
        self._source = source
        self._sink = sink
        self._handler = handler
        self._on_close = on_close
        self._connect_timeout = connect_timeout
        self._connection: Optional[RealtimeConnection] = None
        self._resources: Optional[AsyncExitStack] = None
        self._tasks: list[asyncio.Task[None]] = []
        self._started = False
        self._closed = False
        self._pending_connect: Optional["asyncio.Future[RealtimeConnection]"] = None
        self._init_done: Optional[asyncio.Event] = None

    @property
    def connected(self) -> bool:
        return self._connection is not None and not self._closed

    async def init(self) -> None:
        """Acquire the microphone, connect, and start streaming.

        Raises :class:`MicrophonePermissionError` or
        :class:`RealtimeConnectionError`. Anything acquired before the failure
        is released before the exception propagates.
        """

        if self._started:
            raise RuntimeError("TransportSession instances cannot be reused")
        self._started = True
        self._init_done = asyncio.Event()
        try:
            await self._acquire()
        finally:
            self._pending_connect = None
            self._init_done.set()

        logger.info("[Voice] Realtime session connected")

    async def _acquire(self) -> None:
        async with AsyncExitStack() as stack:
            try:
                await self._source.open()
            except PermissionError:
                raise
            except Exception as exc:
                raise MicrophonePermissionError(f"Microphone unavailable: {exc}") from exc
            stack.push_async_callback(self._source.close)
            stack.push_async_callback(self._sink.close)
            self._raise_if_closed()

            connection = await self._connect()
            stack.push_async_callback(connection.close)
            self._raise_if_closed()

            self._connection = connection
            self._tasks = [
                asyncio.create_task(self._pump_microphone(connection)),
                asyncio.create_task(self._pump_events(connection)),
            ]
            self._resources = stack.pop_all()

    async def _connect(self) -> RealtimeConnection:
        # Own task so disconnect() can abandon the handshake without cancelling init().
        pending = asyncio.ensure_future(asyncio.wait_for(self._connector.connect(), self._connect_timeout))
        self._pending_connect = pending
        try:
            return await pending
        except asyncio.CancelledError:
            if self._closed and pending.cancelled():
                raise RealtimeConnectionError("Session was disconnected during initialisation") from None
            raise
        except asyncio.TimeoutError as exc:
            raise RealtimeConnectionError(
                f"Timed out after {self._connect_timeout}s connecting to the realtime endpoint"
            ) from exc
        except Exception as exc:
            raise RealtimeConnectionError(f"Failed to connect to the realtime endpoint: {exc}") from exc

    def _raise_if_closed(self) -> None:
        if self._closed:
            raise RealtimeConnectionError("Session was disconnected during initialisation")

    async def disconnect(self) -> None:
        """Tear everything down. Safe to call repeatedly or before ``init``.

        If ``init`` is still running, the pending handshake is abandoned and
        this returns only once everything ``init`` acquired has been released.
        """

        if self._closed:
            return
        self._closed = True

        if self._pending_connect is not None:
            self._pending_connect.cancel()
        if self._init_done is not None:
            await self._init_done.wait()

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []

        resources, self._resources = self._resources, None
        self._connection = None
        if resources is not None:
            try:
                await resources.aclose()
            except Exception:
                logger.exception("[Voice] Error while releasing realtime session resources")
            else:
                logger.info("[Voice] Realtime session disconnected")

    async def _pump_microphone(self, connection: RealtimeConnection) -> None:
        try:
            async for frame in self._source.frames():
                if frame:
                    await connection.send_audio(frame)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[Voice] Microphone streaming stopped unexpectedly")

    async def _pump_events(self, connection: RealtimeConnection) -> None:
        try:
            async for raw in connection.events():
                if self._closed:
                    break
                try:
                    accepted = self._handler(raw)
                except Exception:
                    logger.exception("[Voice] Realtime event handler failed")
                    accepted = None
                if accepted is not False and is_audio_delta(raw):
                    pcm = decode_audio_delta(raw)
                    if pcm:
                        await self._sink.play(pcm)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[Voice] Realtime event stream failed")

        if not self._closed:
            logger.warning("[Voice] Realtime endpoint closed the event stream")
            if self._on_close is not None:
                self._on_close()
