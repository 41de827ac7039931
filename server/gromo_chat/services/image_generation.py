"""Image generation via the OpenAI Images API."""
from __future__ import annotations

import asyncio
import logging

from openai import OpenAI

logger = logging.getLogger(__name__)


class ImageGenerationService:
    """Generates an image for a prompt and returns a URL the client can render."""

    def __init__(self, client: OpenAI, *, model: str = "dall-e-3", size: str = "1024x1024") -> None:
        self._client = client
        self._model = model
        self._size = size

    async def generate(self, prompt: str) -> str:
        """Return a hosted image URL, or a ``data:`` URL when the API returns base64."""

        def _run() -> str:
            response = self._client.images.generate(model=self._model, prompt=prompt, n=1, size=self._size)
            image = response.data[0]
            if getattr(image, "url", None):
                return image.url
            b64 = getattr(image, "b64_json", None)
            if b64:
                return f"data:image/png;base64,{b64}"
            raise RuntimeError("Image generation returned no image")

        logger.info("Generating image with %s (%d char prompt)", self._model, len(prompt))
        return await asyncio.to_thread(_run)
