from __future__ import annotations

import asyncio
import base64
from typing import Any, Optional

import pytest

from gromo_chat.services.errors import MicrophonePermissionError, RealtimeConnectionError
from gromo_chat.services.realtime_voice import TransportSession


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


async def _settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


class FakeConnection:
    def __init__(self) -> None:
        self.incoming: asyncio.Queue[Optional[dict[str, Any]]] = asyncio.Queue()
        self.sent: list[bytes] = []
        self.close_calls = 0

    async def send_audio(self, audio: bytes) -> None:
        self.sent.append(audio)

    async def events(self):
        while True:
            event = await self.incoming.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        self.close_calls += 1


class FakeConnector:
    def __init__(self, *, fail: Optional[Exception] = None, gate: Optional[asyncio.Event] = None) -> None:
        self.fail = fail
        self.gate = gate
        self.connections: list[FakeConnection] = []

    async def connect(self) -> FakeConnection:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


class FakeSource:
    def __init__(self, *, fail: Optional[Exception] = None) -> None:
        self.fail = fail
        self.frames_queue: asyncio.Queue[bytes] = asyncio.Queue()
        self.open_calls = 0
        self.close_calls = 0

    async def open(self) -> None:
        self.open_calls += 1
        if self.fail is not None:
            raise self.fail

    async def frames(self):
        while True:
            yield await self.frames_queue.get()

    async def close(self) -> None:
        self.close_calls += 1


class FakeSink:
    def __init__(self) -> None:
        self.played: list[bytes] = []
        self.close_calls = 0

    async def play(self, pcm: bytes) -> None:
        self.played.append(pcm)

    async def close(self) -> None:
        self.close_calls += 1


def _session(connector=None, source=None, sink=None, handler=None, **kwargs):  # noqa: ANN001
    events: list[dict[str, Any]] = []
    session = TransportSession(
        connector or FakeConnector(),
        source or FakeSource(),
        sink or FakeSink(),
        handler or events.append,
        **kwargs,
    )
    return session, events


def test_microphone_denied_raises_permission_error() -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        source = FakeSource(fail=MicrophonePermissionError("denied"))
        sink = FakeSink()
        session, _ = _session(connector, source, sink)

        with pytest.raises(PermissionError):
            await session.init()

        assert connector.connections == []
        assert source.close_calls == 0
        assert sink.close_calls == 0
        await session.disconnect()

    _run(scenario())


def test_unavailable_microphone_is_a_permission_error() -> None:
    async def scenario() -> None:
        session, _ = _session(source=FakeSource(fail=OSError("no input device")))

        with pytest.raises(MicrophonePermissionError):
            await session.init()

    _run(scenario())


def test_handshake_failure_releases_microphone() -> None:
    async def scenario() -> None:
        source = FakeSource()
        sink = FakeSink()
        session, _ = _session(FakeConnector(fail=OSError("401 Unauthorized")), source, sink)

        with pytest.raises(ConnectionError) as excinfo:
            await session.init()

        assert isinstance(excinfo.value, RealtimeConnectionError)
        assert source.close_calls == 1
        assert sink.close_calls == 1
        assert not session.connected

    _run(scenario())


def test_connect_timeout() -> None:
    async def scenario() -> None:
        source = FakeSource()
        session, _ = _session(FakeConnector(gate=asyncio.Event()), source, connect_timeout=0.01)

        with pytest.raises(RealtimeConnectionError):
            await session.init()

        assert source.close_calls == 1

    _run(scenario())


def test_events_reach_handler_in_order_and_audio_plays() -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        sink = FakeSink()
        session, events = _session(connector, sink=sink)
        await session.init()

        pcm = b"\x00\x01\x02\x03"
        script = [
            {"type": "response.audio_transcript.delta", "delta": "Hel"},
            {"type": "response.audio.delta", "delta": base64.b64encode(pcm).decode()},
            {"type": "response.audio_transcript.delta", "delta": "lo"},
            {"type": "response.audio_transcript.done"},
        ]
        for event in script:
            connector.connections[0].incoming.put_nowait(event)
        await _settle()

        assert events == script
        assert sink.played == [pcm]
        await session.disconnect()

    _run(scenario())


def test_microphone_frames_are_streamed() -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        source = FakeSource()
        session, _ = _session(connector, source)
        await session.init()

        source.frames_queue.put_nowait(b"\x01\x00")
        source.frames_queue.put_nowait(b"\x02\x00")
        await _settle()

        assert connector.connections[0].sent == [b"\x01\x00", b"\x02\x00"]
        await session.disconnect()

    _run(scenario())


def test_disconnect_is_idempotent_and_releases_everything() -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        source = FakeSource()
        sink = FakeSink()
        session, _ = _session(connector, source, sink)
        await session.init()
        assert session.connected

        await session.disconnect()
        await session.disconnect()

        assert connector.connections[0].close_calls == 1
        assert source.close_calls == 1
        assert sink.close_calls == 1
        assert not session.connected

    _run(scenario())


def test_disconnect_before_init_is_a_noop() -> None:
    async def scenario() -> None:
        source = FakeSource()
        session, _ = _session(source=source)

        await session.disconnect()

        assert source.open_calls == 0
        assert source.close_calls == 0

    _run(scenario())


def test_disconnect_during_connect_abandons_handshake_and_waits_for_release() -> None:
    async def scenario() -> None:
        gate = asyncio.Event()
        connector = FakeConnector(gate=gate)
        source = FakeSource()
        sink = FakeSink()
        session, _ = _session(connector, source, sink)

        init = asyncio.create_task(session.init())
        await _settle()
        await session.disconnect()

        # Everything init acquired is released by the time disconnect returns.
        assert source.close_calls == 1
        assert sink.close_calls == 1
        assert init.done()
        with pytest.raises(RealtimeConnectionError):
            await init

        gate.set()
        await _settle()
        assert connector.connections == []
        assert not session.connected

    _run(scenario())


def test_disconnect_while_opening_microphone_skips_connect() -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        holder: dict[str, TransportSession] = {}

        class RacingSource(FakeSource):
            async def open(self) -> None:
                await super().open()
                asyncio.get_running_loop().create_task(holder["session"].disconnect())
                await asyncio.sleep(0)

        source = RacingSource()
        session, _ = _session(connector, source)
        holder["session"] = session

        with pytest.raises(RealtimeConnectionError):
            await session.init()
        await _settle()

        assert source.close_calls == 1
        assert connector.connections == []

    _run(scenario())


def test_audio_for_rejected_events_is_not_played() -> None:
    async def scenario() -> None:
        connector = FakeConnector()
        sink = FakeSink()
        seen: list[str] = []

        def handler(event: dict[str, Any]) -> bool:
            seen.append(event["type"])
            return False

        session, _ = _session(connector, sink=sink, handler=handler)
        await session.init()

        pcm = base64.b64encode(b"\x00\x01").decode()
        connector.connections[0].incoming.put_nowait({"type": "response.audio.delta", "delta": pcm})
        await _settle()

        assert seen == ["response.audio.delta"]
        assert sink.played == []
        await session.disconnect()

    _run(scenario())


def test_session_cannot_be_reused() -> None:
    async def scenario() -> None:
        session, _ = _session()
        await session.init()
        await session.disconnect()

        with pytest.raises(RuntimeError):
            await session.init()

    _run(scenario())


def test_remote_close_notifies_once() -> None:
    async def scenario() -> None:
        closes: list[bool] = []
        connector = FakeConnector()
        session, _ = _session(connector, on_close=lambda: closes.append(True))
        await session.init()

        connector.connections[0].incoming.put_nowait(None)
        await _settle()

        assert closes == [True]
        await session.disconnect()
        assert closes == [True]

    _run(scenario())


def test_handler_errors_do_not_stop_the_event_pump() -> None:
    async def scenario() -> None:
        seen: list[str] = []

        def handler(event: dict[str, Any]) -> None:
            seen.append(event["type"])
            if event["type"] == "bad":
                raise ValueError("handler bug")

        connector = FakeConnector()
        session, _ = _session(connector, handler=handler)
        await session.init()

        connector.connections[0].incoming.put_nowait({"type": "bad"})
        connector.connections[0].incoming.put_nowait({"type": "good"})
        await _settle()

        assert seen == ["bad", "good"]
        await session.disconnect()

    _run(scenario())
