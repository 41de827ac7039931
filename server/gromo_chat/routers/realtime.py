"""Realtime voice gateway.

Client messages:
    ``{"type": "start", "microphone": "granted" | "denied"}``
    ``{"type": "stop"}``
    ``{"type": "audio", "data": [int16, ...]}``
    ``{"type": "conversation", "conversation_id": str | null}``

Server messages: ``voice_status``, ``notification``, ``transcript``, ``audio``,
``audio_end`` and ``error``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..dependencies import AppServices
from ..services.browser_audio import BrowserAudioBridge
from ..services.chat import ChatSession
from ..services.realtime_voice import CloseHandler, EventHandler, TransportSession
from ..services.voice_control import VoiceController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])

AUTH_FAILED_CLOSE_CODE = 4401


async def _pump_outbox(websocket: WebSocket, outbox: "asyncio.Queue[dict[str, Any]]") -> None:
    while True:
        message = await outbox.get()
        await websocket.send_text(json.dumps(message))


async def _select_conversation(
    services: AppServices, chat: ChatSession, conversation_id: Optional[str], user_id: str
) -> bool:
    if conversation_id is None or not services.store.enabled:
        # Without persistence there is nothing to verify or load.
        chat.conversation_id = conversation_id
        chat.messages = []
        return True
    if await services.store.get_conversation(conversation_id, user_id=user_id) is None:
        return False
    return await chat.load(conversation_id)


@router.websocket("/voice")
async def realtime_voice_gateway(websocket: WebSocket) -> None:
    """Bridge a browser voice session to the OpenAI Realtime API."""

    services: AppServices = websocket.app.state.services
    token = websocket.query_params.get("access_token") or ""
    user = await services.auth.get_user(token)
    if user is None:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
        return

    await websocket.accept()
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    bridge = BrowserAudioBridge(outbox.put_nowait)
    chat = ChatSession(services.store, user_id=user.id)

    def on_transcript(text: str, is_user: bool) -> None:
        message = chat.on_voice_transcript(text, is_user)
        outbox.put_nowait({"type": "transcript", "role": message.role, "content": message.content})

    def session_factory(handler: EventHandler, on_close: CloseHandler) -> TransportSession:
        return TransportSession(
            services.connector,
            bridge.source,
            bridge.sink,
            handler,
            on_close=on_close,
            connect_timeout=services.settings.realtime_connect_timeout,
        )

    controller = VoiceController(
        session_factory,
        on_transcript=on_transcript,
        notify=lambda notification: outbox.put_nowait(notification.to_message()),
        on_status=lambda status: outbox.put_nowait(status.to_message()),
        disconnect_on_error=services.settings.voice_disconnect_on_error,
    )
    outbox.put_nowait(controller.status.to_message())

    writer = asyncio.create_task(_pump_outbox(websocket, outbox))
    starts: set[asyncio.Task[bool]] = set()
    logger.info("[Voice] Gateway opened for user %s", user.id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                outbox.put_nowait({"type": "error", "error": "Invalid JSON message."})
                continue
            message_type = message.get("type") if isinstance(message, dict) else None

            if message_type == "audio":
                samples = message.get("data")
                if isinstance(samples, list):
                    bridge.push_samples(samples)
            elif message_type == "start":
                bridge.grant_microphone(message.get("microphone"))
                # Run in the background so stop/audio messages keep flowing while connecting.
                task = asyncio.create_task(controller.start())
                starts.add(task)
                task.add_done_callback(starts.discard)
            elif message_type == "stop":
                controller.stop()
            elif message_type == "conversation":
                conversation_id = message.get("conversation_id")
                if not await _select_conversation(services, chat, conversation_id, user.id):
                    outbox.put_nowait({"type": "error", "error": "Conversation not found."})
                else:
                    outbox.put_nowait(
                        {"type": "client_info", "info": "conversation_set", "conversation_id": conversation_id}
                    )
            else:
                outbox.put_nowait({"type": "error", "error": f"Unknown message type: {message_type}"})
    except WebSocketDisconnect:
        logger.info("[Voice] Gateway closed for user %s", user.id)
    finally:
        await controller.aclose()
        if starts:
            await asyncio.gather(*list(starts), return_exceptions=True)
        await chat.drain()
        writer.cancel()
        await asyncio.gather(writer, return_exceptions=True)
