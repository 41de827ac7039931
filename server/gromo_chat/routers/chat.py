"""Text chat and image generation endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import AppServices, current_user, get_services
from ..models import schemas
from ..services.auth import AuthenticatedUser
from ..services.chat import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


async def _owned_conversation(services: AppServices, conversation_id: str | None, user: AuthenticatedUser) -> None:
    if conversation_id is None or not services.store.enabled:
        return
    if await services.store.get_conversation(conversation_id, user_id=user.id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.post("/messages", response_model=schemas.ChatResponse)
async def send_message(
    payload: schemas.ChatSendRequest,
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> schemas.ChatResponse:
    """Send a user message and return it together with the assistant's reply."""

    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Please enter a message")
    if services.assistant is None:
        raise HTTPException(status_code=503, detail="Chat completion is not configured")
    await _owned_conversation(services, payload.conversation_id, user)

    session = ChatSession(
        services.store,
        user_id=user.id,
        assistant=services.assistant,
        conversation_id=payload.conversation_id,
        messages=payload.history,
    )
    try:
        messages = await session.send(payload.content)
    except Exception as exc:
        logger.exception("Chat completion failed")
        raise HTTPException(status_code=502, detail=f"Failed to get response: {exc}") from exc

    return schemas.ChatResponse(
        conversation_id=session.conversation_id, messages=messages, warnings=session.warnings
    )


@router.post("/images", response_model=schemas.ChatResponse)
async def generate_image(
    payload: schemas.ImageRequest,
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> schemas.ChatResponse:
    """Generate an image for the prompt and record both sides of the exchange."""

    if not payload.prompt.strip():
        raise HTTPException(status_code=400, detail="Please enter a prompt")
    if services.images is None:
        raise HTTPException(status_code=503, detail="Image generation is not configured")
    await _owned_conversation(services, payload.conversation_id, user)

    session = ChatSession(
        services.store,
        user_id=user.id,
        images=services.images,
        conversation_id=payload.conversation_id,
    )
    try:
        messages = await session.generate_image(payload.prompt)
    except Exception as exc:
        logger.exception("Image generation failed")
        raise HTTPException(status_code=502, detail=f"Failed to generate image: {exc}") from exc

    return schemas.ChatResponse(
        conversation_id=session.conversation_id, messages=messages, warnings=session.warnings
    )
