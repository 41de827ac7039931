"""FastAPI application entrypoint for the Gromo GPT chat server."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import get_settings
from .dependencies import AppServices
from .routers import chat, conversations, export, files, realtime

logging.basicConfig(level=getattr(logging, get_settings().log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """Instantiate and configure the FastAPI application.

    ``services`` is built from the environment at startup unless one is
    supplied, which is how tests swap in fakes.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.services = services or AppServices.from_settings(get_settings())
        logger.info("Chat server ready (assistant=%s)", app.state.services.settings.assistant_name)
        yield

    application = FastAPI(
        title="Gromo GPT Chat Server",
        description="Chat, image generation, file upload, transcript export and realtime voice.",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(chat.router)
    application.include_router(conversations.router)
    application.include_router(files.router)
    application.include_router(export.router)
    application.include_router(realtime.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "gromo-chat", "status": "ok"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        ws_max_size=16 * 1024 * 1024,
    )
