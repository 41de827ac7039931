"""Conversation state for one chat view.

Persistence is best effort: a failed save is logged and reported through
``warnings`` but never removes the message from the in-memory conversation.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable, Optional

from ..models.schemas import ChatMessage
from .supabase_persistence import ConversationStore, MessageRecord

if TYPE_CHECKING:
    from ..ai_agents.chat_agent import ChatCompletionAgent
    from .image_generation import ImageGenerationService

logger = logging.getLogger(__name__)

TITLE_LIMIT = 50


def conversation_title(first_message: str) -> str:
    title = first_message[:TITLE_LIMIT]
    return title + "..." if len(first_message) > TITLE_LIMIT else title


class ChatSession:
    def __init__(
        self,
        store: ConversationStore,
        *,
        user_id: str,
        assistant: Optional["ChatCompletionAgent"] = None,
        images: Optional["ImageGenerationService"] = None,
        conversation_id: Optional[str] = None,
        messages: Optional[Iterable[ChatMessage]] = None,
    ) -> None:
        self._store = store
        self._assistant = assistant
        self._images = images
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.messages: list[ChatMessage] = list(messages or [])
        self.warnings: list[str] = []
        self._persist_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    def _warn(self, warning: str) -> None:
        logger.warning("[Chat %s] %s", self.conversation_id or "new", warning)
        self.warnings.append(warning)

    async def load(self, conversation_id: str) -> bool:
        """Replace the in-memory conversation with the stored one."""

        rows = await self._store.list_messages(conversation_id)
        if rows is None:
            self._warn("Failed to load messages")
            return False
        self.messages = [ChatMessage.from_row(row) for row in rows]
        self.conversation_id = conversation_id
        return True

    async def ensure_conversation(self, first_message: str) -> Optional[str]:
        if self.conversation_id is None and self._store.enabled:
            conversation_id = await self._store.create_conversation(
                user_id=self.user_id, title=conversation_title(first_message)
            )
            if conversation_id is None:
                self._warn("Failed to create conversation")
            self.conversation_id = conversation_id
        return self.conversation_id

    async def _save(self, message: ChatMessage) -> None:
        if self.conversation_id is None:
            return
        record = MessageRecord(
            role=message.role,
            content=message.content,
            image_url=message.image,
            file_url=message.file_url,
            file_name=message.file_name,
        )
        message_id = await self._store.record_message(self.conversation_id, record)
        if message_id is None and self._store.enabled:
            self._warn("Failed to save message")

    async def send(self, content: str) -> list[ChatMessage]:
        """Append the user's message and the assistant's reply."""

        if self._assistant is None:
            raise RuntimeError("No chat assistant configured")

        user_message = ChatMessage(role="user", content=content)
        self.messages.append(user_message)
        await self.ensure_conversation(content)
        await self._save(user_message)

        history = [{"role": m.role, "content": m.content} for m in self.messages]
        reply = await self._assistant.generate_reply(history)

        assistant_message = ChatMessage(role="assistant", content=reply)
        self.messages.append(assistant_message)
        await self._save(assistant_message)
        return [user_message, assistant_message]

    async def generate_image(self, prompt: str) -> list[ChatMessage]:
        if self._images is None:
            raise RuntimeError("No image generator configured")

        await self.ensure_conversation(f"Image: {prompt}")
        image_url = await self._images.generate(prompt)

        user_message = ChatMessage(role="user", content=f"Generate image: {prompt}")
        assistant_message = ChatMessage(role="assistant", content="Image generated:", image=image_url)
        self.messages.extend([user_message, assistant_message])
        await self._save(user_message)
        await self._save(assistant_message)
        return [user_message, assistant_message]

    async def attach_file(self, url: str, file_name: str) -> ChatMessage:
        message = ChatMessage(
            role="user",
            content=f"Uploaded file: {file_name}",
            file_url=url,
            file_name=file_name,
        )
        self.messages.append(message)
        await self._save(message)
        return message

    def on_voice_transcript(self, text: str, is_user: bool) -> ChatMessage:
        """Record a finalized voice utterance; persistence runs in the background, in order."""

        message = ChatMessage(role="user" if is_user else "assistant", content=text)
        self.messages.append(message)
        task = asyncio.get_running_loop().create_task(self._persist_voice(message, is_user))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return message

    async def _persist_voice(self, message: ChatMessage, is_user: bool) -> None:
        async with self._persist_lock:
            try:
                if is_user:
                    await self.ensure_conversation(message.content)
                await self._save(message)
            except Exception:
                logger.exception("Failed to persist voice transcript")
                self.warnings.append("Failed to save message")

    async def drain(self) -> None:
        """Wait for background persistence to finish."""

        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
