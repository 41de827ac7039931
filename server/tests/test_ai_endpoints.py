from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from gromo_chat.ai_agents.chat_agent import ChatCompletionAgent
from gromo_chat.services.image_generation import ImageGenerationService


class FakeCompletions:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls: list[dict] = []

    def create(self, **kwargs):  # noqa: ANN003, ANN201
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeImages:
    def __init__(self, image: SimpleNamespace) -> None:
        self.image = image
        self.calls: list[dict] = []

    def generate(self, **kwargs):  # noqa: ANN003, ANN201
        self.calls.append(kwargs)
        return SimpleNamespace(data=[self.image])


def test_chat_agent_prefixes_system_prompt_and_skips_empty_turns() -> None:
    completions = FakeCompletions("  Sure thing.  ")
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    agent = ChatCompletionAgent(client, model="gpt-test", assistant_name="Gromo GPT")

    reply = asyncio.run(
        agent.generate_reply(
            [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": ""},
                {"role": "system", "content": "ignored"},
                {"role": "user", "content": "help me"},
            ]
        )
    )

    assert reply == "Sure thing."
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["messages"][0]["role"] == "system"
    assert "Gromo GPT" in call["messages"][0]["content"]
    assert [m["content"] for m in call["messages"][1:]] == ["hi", "help me"]


def test_image_service_returns_hosted_url() -> None:
    images = FakeImages(SimpleNamespace(url="https://img.example/1.png", b64_json=None))
    service = ImageGenerationService(SimpleNamespace(images=images), model="dall-e-3", size="512x512")

    assert asyncio.run(service.generate("a cat")) == "https://img.example/1.png"
    assert images.calls[0] == {"model": "dall-e-3", "prompt": "a cat", "n": 1, "size": "512x512"}


def test_image_service_falls_back_to_data_url() -> None:
    images = FakeImages(SimpleNamespace(url=None, b64_json="aGVsbG8="))
    service = ImageGenerationService(SimpleNamespace(images=images))

    assert asyncio.run(service.generate("x")) == "data:image/png;base64,aGVsbG8="


def test_image_service_without_image_raises() -> None:
    service = ImageGenerationService(SimpleNamespace(images=FakeImages(SimpleNamespace(url=None, b64_json=None))))

    with pytest.raises(RuntimeError):
        asyncio.run(service.generate("x"))
