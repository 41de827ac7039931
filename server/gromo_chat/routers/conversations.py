"""Conversation history endpoints."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import AppServices, current_user, get_services
from ..models import schemas
from ..services.auth import AuthenticatedUser

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("/", response_model=List[schemas.ConversationSummary])
async def list_conversations(
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> List[schemas.ConversationSummary]:
    """Return the user's conversations, most recently updated first."""

    rows = await services.store.list_conversations(user_id=user.id) or []
    return [
        schemas.ConversationSummary(
            id=str(row["id"]),
            title=row.get("title") or "Untitled",
            updated_at=row.get("updated_at"),
        )
        for row in rows
        if row.get("id") is not None
    ]


@router.get("/{conversation_id}/messages", response_model=List[schemas.ChatMessage])
async def list_messages(
    conversation_id: str,
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> List[schemas.ChatMessage]:
    if await services.store.get_conversation(conversation_id, user_id=user.id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    rows = await services.store.list_messages(conversation_id)
    if rows is None:
        raise HTTPException(status_code=502, detail="Failed to load messages")
    return [schemas.ChatMessage.from_row(row) for row in rows]


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> None:
    if await services.store.get_conversation(conversation_id, user_id=user.id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not await services.store.delete_conversation(conversation_id, user_id=user.id):
        raise HTTPException(status_code=502, detail="Failed to delete conversation")
