"""Voice control surface owning one realtime session's lifecycle."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .errors import RealtimeProtocolError
from .realtime_events import EventRelay, decode_event
from .realtime_voice import CloseHandler, EventHandler

logger = logging.getLogger(__name__)


class VoiceState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"


@dataclass(frozen=True)
class VoiceStatus:
    state: VoiceState
    speaking: bool = False

    def to_message(self) -> dict[str, Any]:
        return {"type": "voice_status", "state": self.state.value, "speaking": self.speaking}


@dataclass(frozen=True)
class Notification:
    """Transient user-facing notice, rendered by the client as a toast."""

    title: str
    description: str
    variant: str = "default"

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "notification",
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
        }


class VoiceSession(Protocol):
    async def init(self) -> None: ...

    async def disconnect(self) -> None: ...


SessionFactory = Callable[[EventHandler, CloseHandler], VoiceSession]
TranscriptCallback = Callable[[str, bool], None]


class VoiceController:
    """Start/stop a realtime session and forward finalized transcripts.

    ``on_transcript(text, is_user)`` fires exactly once per finalized
    utterance, in completion order. ``stop()`` takes effect synchronously;
    events that were already in flight for a stopped session are dropped.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        on_transcript: TranscriptCallback,
        notify: Optional[Callable[[Notification], None]] = None,
        on_status: Optional[Callable[[VoiceStatus], None]] = None,
        disconnect_on_error: bool = False,
    ) -> None:
        self._session_factory = session_factory
        self._on_transcript = on_transcript
        self._notify = notify
        self._on_status = on_status
        self._disconnect_on_error = disconnect_on_error
        self._relay = EventRelay(self)

        self._state = VoiceState.IDLE
        self._speaking = False
        self._session: Optional[VoiceSession] = None
        # Identifies the current start/stop cycle; stale callbacks compare against it.
        self._token: Optional[object] = None
        self._teardown: Optional[asyncio.Task[None]] = None
        self._assistant_transcript: list[str] = []
        self._user_transcript: list[str] = []

    @property
    def status(self) -> VoiceStatus:
        return VoiceStatus(self._state, self._speaking)

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def assistant_transcript(self) -> str:
        return "".join(self._assistant_transcript)

    @property
    def user_transcript(self) -> str:
        return "".join(self._user_transcript)

    async def start(self) -> bool:
        """Open a new session. Returns ``False`` if it did not become active."""

        if self._state is not VoiceState.IDLE:
            logger.warning("[Voice] Start ignored; session is already %s", self._state.value)
            return False

        token = object()
        self._token = token
        self._set_status(VoiceState.CONNECTING, False)

        # The previous session must be fully released before a new one starts.
        await self._wait_for_teardown()
        if self._token is not token:
            return False

        session = self._session_factory(
            lambda raw: self._handle_event(token, raw),
            lambda: self._handle_remote_close(token),
        )
        self._session = session
        try:
            await session.init()
        except asyncio.CancelledError:
            await self._release_failed(token, session)
            raise
        except Exception as exc:
            await self._release_failed(token, session)
            if self._token is token:
                self._reset()
                logger.error("[Voice] Failed to start voice chat: %s", exc)
                self._emit_notification(Notification("Error", str(exc) or "Failed to start voice chat", "destructive"))
            return False

        if self._token is not token:
            # Stopped while connecting; stop() already scheduled the disconnect.
            return False

        self._set_status(VoiceState.ACTIVE, False)
        self._emit_notification(Notification("Voice Chat Active", "You can now speak with the AI"))
        return True

    def stop(self) -> None:
        """End the interaction. UI state is ``IDLE`` when this returns."""

        was_running = self._state is not VoiceState.IDLE
        session = self._session
        self._reset()
        if session is not None:
            self._schedule_teardown(session)
        if was_running:
            self._emit_notification(Notification("Voice Chat Ended", "Conversation disconnected"))

    async def aclose(self) -> None:
        """Stop and wait until the session has released its resources."""

        self.stop()
        await self._wait_for_teardown()

    def _reset(self) -> None:
        self._token = None
        self._session = None
        self._assistant_transcript.clear()
        self._user_transcript.clear()
        self._set_status(VoiceState.IDLE, False)

    def _schedule_teardown(self, session: VoiceSession) -> None:
        previous = self._teardown

        async def _teardown() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            try:
                await session.disconnect()
            except Exception:
                logger.exception("[Voice] Session teardown failed")

        self._teardown = asyncio.get_running_loop().create_task(_teardown())

    async def _wait_for_teardown(self) -> None:
        while self._teardown is not None:
            teardown = self._teardown
            await asyncio.gather(teardown, return_exceptions=True)
            if self._teardown is teardown:
                self._teardown = None

    async def _release_failed(self, token: object, session: VoiceSession) -> None:
        try:
            await session.disconnect()
        except Exception:
            logger.exception("[Voice] Failed to release session after init failure")
        if self._session is session and self._token is token:
            self._session = None

    def _set_status(self, state: VoiceState, speaking: bool) -> None:
        if state is self._state and speaking == self._speaking:
            return
        self._state = state
        self._speaking = speaking
        logger.info("[Voice] State -> %s (speaking=%s)", state.value, speaking)
        if self._on_status is not None:
            self._on_status(self.status)

    def _emit_notification(self, notification: Notification) -> None:
        if self._notify is not None:
            self._notify(notification)

    def _emit_transcript(self, text: str, is_user: bool) -> None:
        try:
            self._on_transcript(text, is_user)
        except Exception:
            logger.exception("[Voice] Transcript callback failed")

    def _handle_event(self, token: object, raw: dict[str, Any]) -> bool:
        if token is not self._token:
            logger.debug("[Voice] Discarding event for a stopped session")
            return False
        self._relay.dispatch(decode_event(raw))
        return True

    def _handle_remote_close(self, token: object) -> None:
        if token is not self._token:
            return
        session = self._session
        self._reset()
        if session is not None:
            self._schedule_teardown(session)
        self._emit_notification(Notification("Voice Chat Ended", "The realtime connection was closed", "destructive"))

    # Relay targets.

    def append_assistant_delta(self, delta: str) -> None:
        self._assistant_transcript.append(delta)
        self._set_status(self._state, True)

    def finalize_assistant_turn(self, transcript: Optional[str]) -> None:
        text = "".join(self._assistant_transcript) or (transcript or "")
        self._assistant_transcript.clear()
        self._set_status(self._state, False)
        if text:
            self._emit_transcript(text, False)

    def append_user_delta(self, delta: str) -> None:
        self._user_transcript.append(delta)

    def finalize_user_turn(self, transcript: str) -> None:
        self._user_transcript.clear()
        if transcript:
            self._emit_transcript(transcript, True)

    def report_protocol_error(self, error: RealtimeProtocolError) -> None:
        logger.error("[Voice] Realtime API error: %s (code=%s)", error.message, error.code)
        self._emit_notification(Notification("Error", error.message, "destructive"))
        if self._disconnect_on_error:
            self.stop()
