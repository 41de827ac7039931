from __future__ import annotations

import asyncio
from typing import Iterable, Mapping, Optional

from openai import OpenAI

DEFAULT_SYSTEM_PROMPT = (
    "You are {name}, a helpful AI assistant. Answer clearly and concisely, "
    "using markdown for code and lists."
)


class ChatCompletionAgent:
    """Lightweight agent that turns a chat history into the next assistant reply
    via an OpenAI chat completion.
    """

    def __init__(
        self,
        client: OpenAI,
        *,
        model: str = "gpt-4o-mini",
        assistant_name: str = "Gromo GPT",
        system_prompt: Optional[str] = None,
    ):
        self.client = client
        self.model = model
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT.format(name=assistant_name)

    def build_messages(self, history: Iterable[Mapping[str, str]]) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self.system_prompt}]
        for item in history:
            role = item.get("role")
            content = item.get("content") or ""
            if role in {"user", "assistant"} and content:
                messages.append({"role": role, "content": content})
        return messages

    def generate_reply_sync(self, history: Iterable[Mapping[str, str]]) -> str:
        comp = self.client.chat.completions.create(model=self.model, messages=self.build_messages(history))
        choice = comp.choices[0]
        content = choice.message.content or ""
        return content.strip()

    async def generate_reply(self, history: Iterable[Mapping[str, str]]) -> str:
        history = list(history)
        return await asyncio.to_thread(self.generate_reply_sync, history)
