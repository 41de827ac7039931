"""Realtime voice agent and its connection to the OpenAI Realtime API."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

from agents.realtime import RealtimeAgent, RealtimeRunner, RealtimeSession

from ..config import Settings

logger = logging.getLogger(__name__)


def build_voice_agent(settings: Settings) -> RealtimeAgent:
    return RealtimeAgent(
        name=f"{settings.assistant_name} Voice Assistant",
        instructions=(
            f"You are {settings.assistant_name}, a helpful voice assistant. "
            "You provide to the point and succinct answers."
        ),
    )


def _coerce_to_dict(value: Any) -> Optional[dict[str, Any]]:
    """Best-effort conversion of SDK event objects into plain dictionaries."""
    if isinstance(value, dict):
        return value

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump(mode="json")
        if isinstance(dumped, dict):
            return dumped

    return None


class AgentsRealtimeConnection:
    """Adapts a :class:`RealtimeSession` to the raw event/audio interface."""

    def __init__(self, session: RealtimeSession) -> None:
        self._session = session

    async def send_audio(self, audio: bytes) -> None:
        await self._session.send_audio(audio)

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        async for event in self._session:
            if event.type == "raw_model_event":
                data = event.data
                if getattr(data, "type", None) != "raw_server_event":
                    continue
                payload = _coerce_to_dict(getattr(data, "data", None))
                if payload is not None:
                    yield payload
            elif event.type == "error":
                # The raw server ``error`` event is relayed above; this one is diagnostic only.
                logger.warning("Realtime session error: %s", getattr(event, "error", "unknown"))

    async def close(self) -> None:
        await self._session.close()


class AgentsRealtimeConnector:
    """Opens realtime sessions with the openai-agents ``RealtimeRunner``."""

    def __init__(self, settings: Settings, agent: Optional[RealtimeAgent] = None) -> None:
        self._settings = settings
        self._agent = agent or build_voice_agent(settings)

    def _model_settings(self) -> dict[str, Any]:
        return {
            "model_name": self._settings.realtime_model,
            "voice": self._settings.realtime_voice,
            "input_audio_transcription": {"model": self._settings.transcription_model},
            "turn_detection": {"type": "server_vad"},
        }

    async def connect(self) -> AgentsRealtimeConnection:
        runner = RealtimeRunner(self._agent, config={"model_settings": self._model_settings()})
        model_config: dict[str, Any] = {}
        if self._settings.openai_api_key:
            model_config["api_key"] = self._settings.openai_api_key
        session = await runner.run(model_config=model_config or None)
        await session.__aenter__()
        logger.info("Opened realtime session with model %s", self._settings.realtime_model)
        return AgentsRealtimeConnection(session)
