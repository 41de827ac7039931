"""Attachment upload endpoint."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..dependencies import AppServices, current_user, get_services
from ..models import schemas
from ..services.auth import AuthenticatedUser
from ..services.chat import ChatSession
from ..services.errors import FileTooLargeError, StorageError

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/", response_model=schemas.UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    conversation_id: Optional[str] = Form(default=None),
    user: AuthenticatedUser = Depends(current_user),
    services: AppServices = Depends(get_services),
) -> schemas.UploadResponse:
    """Store an attachment and, inside a conversation, record it as a user message."""

    data = await file.read()
    file_name = file.filename or "upload"
    try:
        stored = await services.storage.upload(
            user_id=user.id, file_name=file_name, data=data, content_type=file.content_type
        )
    except FileTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if conversation_id is None:
        return schemas.UploadResponse(url=stored.url, file_name=stored.file_name)

    if services.store.enabled and await services.store.get_conversation(conversation_id, user_id=user.id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    session = ChatSession(services.store, user_id=user.id, conversation_id=conversation_id)
    message = await session.attach_file(stored.url, stored.file_name)
    return schemas.UploadResponse(
        url=stored.url, file_name=stored.file_name, message=message, warnings=session.warnings
    )
