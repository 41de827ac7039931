"""Application service container and FastAPI dependencies."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from openai import OpenAI
from supabase import create_client

from .ai_agents.chat_agent import ChatCompletionAgent
from .ai_agents.realtime_conversation import AgentsRealtimeConnector
from .config import Settings
from .services.auth import AuthenticatedUser, SupabaseAuth
from .services.file_storage import FileStorage
from .services.image_generation import ImageGenerationService
from .services.realtime_voice import RealtimeConnector
from .services.supabase_persistence import ConversationStore

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Explicitly constructed clients shared by the routers."""

    settings: Settings
    store: ConversationStore
    storage: FileStorage
    auth: SupabaseAuth
    connector: RealtimeConnector
    assistant: Optional[ChatCompletionAgent] = None
    images: Optional[ImageGenerationService] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppServices":
        supabase_client = None
        if settings.supabase_enabled:
            supabase_client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        else:
            logger.warning("Supabase credentials missing; persistence, storage and auth disabled")

        assistant = None
        images = None
        if settings.openai_api_key:
            openai_client = OpenAI(api_key=settings.openai_api_key)
            assistant = ChatCompletionAgent(
                openai_client, model=settings.chat_model, assistant_name=settings.assistant_name
            )
            images = ImageGenerationService(openai_client, model=settings.image_model, size=settings.image_size)
        else:
            logger.warning("OPENAI_API_KEY missing; chat and image generation disabled")

        return cls(
            settings=settings,
            store=ConversationStore(supabase_client),
            storage=FileStorage(
                supabase_client, bucket=settings.storage_bucket, max_bytes=settings.max_upload_bytes
            ),
            auth=SupabaseAuth(supabase_client),
            connector=AgentsRealtimeConnector(settings),
            assistant=assistant,
            images=images,
        )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def current_user(
    authorization: Optional[str] = Header(default=None),
    services: AppServices = Depends(get_services),
) -> AuthenticatedUser:
    if not services.auth.enabled:
        raise HTTPException(status_code=503, detail="Authentication backend not configured")
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user = await services.auth.get_user(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user
