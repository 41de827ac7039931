"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single message as rendered in the chat view."""

    role: Literal["user", "assistant"]
    content: str
    image: Optional[str] = Field(default=None, description="Generated image URL")
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    file_name: Optional[str] = Field(default=None, alias="fileName")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=row.get("role", "assistant"),
            content=row.get("content") or "",
            image=row.get("image_url"),
            file_url=row.get("file_url"),
            file_name=row.get("file_name"),
        )


class ChatSendRequest(BaseModel):
    """Incoming payload for sending a text message."""

    content: str = Field(..., description="The user's message")
    conversation_id: Optional[str] = Field(default=None, description="Existing conversation, if any")
    history: List[ChatMessage] = Field(default_factory=list, description="Messages already on screen")


class ImageRequest(BaseModel):
    prompt: str = Field(..., description="Image generation prompt")
    conversation_id: Optional[str] = None


class ChatResponse(BaseModel):
    """Messages produced by a chat action plus any non-fatal persistence warnings."""

    conversation_id: Optional[str]
    messages: List[ChatMessage]
    warnings: List[str] = Field(default_factory=list)


class ConversationSummary(BaseModel):
    id: str
    title: str
    updated_at: Optional[str] = None


class UploadResponse(BaseModel):
    url: str
    file_name: str
    message: Optional[ChatMessage] = None
    warnings: List[str] = Field(default_factory=list)


class ExportRequest(BaseModel):
    messages: List[ChatMessage]


class ExportResponse(BaseModel):
    pdf: str = Field(..., description="Base64-encoded PDF document")
