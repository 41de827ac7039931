"""Supabase persistence for conversations and messages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from supabase import Client

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MessageRecord:
    """Structured payload representing a chat message to persist."""

    role: str
    content: str
    image_url: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None


class ConversationStore:
    """Lightweight wrapper around the Supabase client for conversation data.

    The service-role key bypasses row level security, so every query filters by
    the owning user explicitly. With no client configured the store is disabled
    and all calls are no-ops. Failures are logged and reported as ``None``.
    """

    def __init__(self, client: Optional[Client]) -> None:
        self._client = client
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        """Return whether Supabase persistence is configured."""

        return self._client is not None

    async def _execute(self, fn: Callable[[Client], Any]) -> Any:
        if self._client is None:
            return None

        client = self._client
        async with self._lock:
            try:
                return await asyncio.to_thread(lambda: fn(client))
            except Exception:
                logger.exception("Supabase persistence operation failed")
                return None

    @staticmethod
    def _filter_none(data: dict[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in data.items() if value is not None}

    @staticmethod
    def _rows(result: Any) -> Optional[list[dict[str, Any]]]:
        if result is None:
            return None
        data = getattr(result, "data", None)
        if isinstance(data, list):
            return [row for row in data if isinstance(row, dict)]
        if isinstance(data, dict):
            return [data]
        return []

    @staticmethod
    def _first_id(rows: Optional[list[dict[str, Any]]]) -> Optional[str]:
        if rows:
            row_id = rows[0].get("id")
            if row_id is not None:
                return str(row_id)
        return None

    async def create_conversation(self, *, user_id: str, title: str) -> Optional[str]:
        """Insert a conversation and return its id."""

        result = await self._execute(
            lambda client: client.table("conversations").insert({"user_id": user_id, "title": title}).execute()
        )
        return self._first_id(self._rows(result))

    async def list_conversations(self, *, user_id: str) -> Optional[list[dict[str, Any]]]:
        """Return the user's conversations, most recently updated first."""

        result = await self._execute(
            lambda client: client.table("conversations")
            .select("*")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .execute()
        )
        return self._rows(result)

    async def get_conversation(self, conversation_id: str, *, user_id: str) -> Optional[dict[str, Any]]:
        result = await self._execute(
            lambda client: client.table("conversations")
            .select("*")
            .eq("id", conversation_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        rows = self._rows(result)
        return rows[0] if rows else None

    async def delete_conversation(self, conversation_id: str, *, user_id: str) -> bool:
        result = await self._execute(
            lambda client: client.table("conversations")
            .delete()
            .eq("id", conversation_id)
            .eq("user_id", user_id)
            .execute()
        )
        return result is not None

    async def record_message(self, conversation_id: str, message: MessageRecord) -> Optional[str]:
        """Persist a conversation message and return its id if available."""

        payload = self._filter_none(
            {
                "conversation_id": conversation_id,
                "role": message.role,
                "content": message.content,
                "image_url": message.image_url,
                "file_url": message.file_url,
                "file_name": message.file_name,
            }
        )

        result = await self._execute(lambda client: client.table("messages").insert(payload).execute())
        message_id = self._first_id(self._rows(result))
        if result is not None:
            await self._touch_conversation(conversation_id)
        return message_id

    async def _touch_conversation(self, conversation_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self._execute(
            lambda client: client.table("conversations")
            .update({"updated_at": now})
            .eq("id", conversation_id)
            .execute()
        )

    async def list_messages(self, conversation_id: str) -> Optional[list[dict[str, Any]]]:
        """Return a conversation's messages, oldest first."""

        result = await self._execute(
            lambda client: client.table("messages")
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=False)
            .execute()
        )
        return self._rows(result)
