"""Supabase Auth token verification."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import Client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


class SupabaseAuth:
    """Resolves an access token issued by Supabase Auth to its user."""

    def __init__(self, client: Optional[Client]) -> None:
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def get_user(self, token: str) -> Optional[AuthenticatedUser]:
        """Return the token's user, or ``None`` when the token is invalid."""

        if self._client is None or not token:
            return None
        client = self._client
        try:
            response = await asyncio.to_thread(lambda: client.auth.get_user(token))
        except Exception as exc:
            logger.info("Rejected access token: %s", exc)
            return None

        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            return None
        return AuthenticatedUser(id=str(user.id), email=getattr(user, "email", None))
