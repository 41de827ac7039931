"""Inbound realtime event decoding and dispatch.

Raw server events arrive as JSON-like dicts keyed by a ``type`` string. They are
decoded once, at the transport boundary, into a closed set of pydantic variants
so downstream code never matches on raw strings. Anything not in the table
becomes :class:`UnrecognizedEvent` and is ignored, which keeps the relay
tolerant of new event kinds added by the hosted endpoint.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Mapping, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from typing_extensions import assert_never

from .errors import RealtimeProtocolError

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str


class AssistantTranscriptDelta(_Event):
    delta: str


class AssistantTranscriptDone(_Event):
    transcript: Optional[str] = None


class UserTranscriptDelta(_Event):
    delta: str


class UserTranscriptCompleted(_Event):
    transcript: str


class SpeechStarted(_Event):
    pass


class SpeechStopped(_Event):
    pass


class ErrorEvent(_Event):
    message: str
    code: Optional[str] = None


class UnrecognizedEvent(_Event):
    payload: dict[str, Any]


InboundEvent = Union[
    AssistantTranscriptDelta,
    AssistantTranscriptDone,
    UserTranscriptDelta,
    UserTranscriptCompleted,
    SpeechStarted,
    SpeechStopped,
    ErrorEvent,
    UnrecognizedEvent,
]

# Beta and GA realtime protocol names map onto the same variants.
_EVENT_TYPES: dict[str, type[_Event]] = {
    "response.audio_transcript.delta": AssistantTranscriptDelta,
    "response.output_audio_transcript.delta": AssistantTranscriptDelta,
    "response.audio_transcript.done": AssistantTranscriptDone,
    "response.output_audio_transcript.done": AssistantTranscriptDone,
    "conversation.item.input_audio_transcription.delta": UserTranscriptDelta,
    "conversation.item.input_audio_transcription.completed": UserTranscriptCompleted,
    "input_audio_buffer.speech_started": SpeechStarted,
    "input_audio_buffer.speech_stopped": SpeechStopped,
    "error": ErrorEvent,
}

AUDIO_DELTA_TYPES = frozenset({"response.audio.delta", "response.output_audio.delta"})

DEFAULT_ERROR_MESSAGE = "An error occurred"


def _error_fields(raw: Mapping[str, Any]) -> dict[str, Any]:
    error = raw.get("error")
    if isinstance(error, Mapping):
        message = error.get("message")
        code = error.get("code")
    elif isinstance(error, str):
        message, code = error, None
    else:
        message, code = None, None
    return {
        "type": raw.get("type"),
        "message": message if isinstance(message, str) and message else DEFAULT_ERROR_MESSAGE,
        "code": str(code) if code is not None else None,
    }


def decode_event(raw: Any) -> InboundEvent:
    """Decode a raw realtime event. Never raises."""

    if not isinstance(raw, Mapping):
        return UnrecognizedEvent(type="", payload={"value": raw})

    event_type = raw.get("type")
    if not isinstance(event_type, str):
        return UnrecognizedEvent(type="", payload=dict(raw))

    model = _EVENT_TYPES.get(event_type)
    if model is None:
        return UnrecognizedEvent(type=event_type, payload=dict(raw))

    data = _error_fields(raw) if model is ErrorEvent else dict(raw)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Malformed realtime event %s: %s", event_type, exc.errors())
        return UnrecognizedEvent(type=event_type, payload=dict(raw))


def is_audio_delta(raw: Any) -> bool:
    return isinstance(raw, Mapping) and raw.get("type") in AUDIO_DELTA_TYPES


def decode_audio_delta(raw: Mapping[str, Any]) -> bytes:
    """Return the PCM16 bytes carried by an assistant audio delta event."""

    delta = raw.get("delta")
    if not isinstance(delta, str) or not delta:
        return b""
    try:
        return base64.b64decode(delta, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Dropping audio delta with invalid base64 payload")
        return b""


class RelayTarget(Protocol):
    """State transitions the relay drives on the voice control surface."""

    def append_assistant_delta(self, delta: str) -> None: ...

    def finalize_assistant_turn(self, transcript: Optional[str]) -> None: ...

    def append_user_delta(self, delta: str) -> None: ...

    def finalize_user_turn(self, transcript: str) -> None: ...

    def report_protocol_error(self, error: RealtimeProtocolError) -> None: ...


class EventRelay:
    """Route decoded events to the matching :class:`RelayTarget` transition."""

    def __init__(self, target: RelayTarget) -> None:
        self._target = target

    def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, AssistantTranscriptDelta):
            self._target.append_assistant_delta(event.delta)
        elif isinstance(event, AssistantTranscriptDone):
            self._target.finalize_assistant_turn(event.transcript)
        elif isinstance(event, UserTranscriptDelta):
            self._target.append_user_delta(event.delta)
        elif isinstance(event, UserTranscriptCompleted):
            self._target.finalize_user_turn(event.transcript)
        elif isinstance(event, SpeechStarted):
            logger.debug("User started speaking")
        elif isinstance(event, SpeechStopped):
            logger.debug("User stopped speaking")
        elif isinstance(event, ErrorEvent):
            self._target.report_protocol_error(RealtimeProtocolError(event.message, code=event.code))
        elif isinstance(event, UnrecognizedEvent):
            logger.debug("Ignoring realtime event %s", event.type or "<untyped>")
        else:
            assert_never(event)
