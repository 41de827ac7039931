"""Configuration helpers for the chat server."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_timeout(name: str, default: float) -> Optional[float]:
    value = _env(name)
    if value is None:
        return default
    seconds = float(value)
    # Zero or negative disables the connection timeout entirely.
    return seconds if seconds > 0 else None


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Every field is read from the environment when the instance is built, so a
    fresh ``Settings()`` reflects the current process environment. The app
    factory builds one instance and hands it to the components that need it.
    """

    openai_api_key: Optional[str] = field(default_factory=lambda: _env("OPENAI_API_KEY"))
    supabase_url: Optional[str] = field(default_factory=lambda: _env("SUPABASE_URL"))
    supabase_service_role_key: Optional[str] = field(
        default_factory=lambda: _env("SUPABASE_SERVICE_ROLE_KEY")
    )
    storage_bucket: str = field(default_factory=lambda: _env("SUPABASE_STORAGE_BUCKET", "chat-files"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    assistant_name: str = field(default_factory=lambda: _env("ASSISTANT_NAME", "Gromo GPT"))
    chat_model: str = field(default_factory=lambda: _env("CHAT_MODEL", "gpt-4o-mini"))
    image_model: str = field(default_factory=lambda: _env("IMAGE_MODEL", "dall-e-3"))
    image_size: str = field(default_factory=lambda: _env("IMAGE_SIZE", "1024x1024"))
    max_upload_bytes: int = field(default_factory=lambda: int(_env("MAX_UPLOAD_BYTES", "10485760")))

    # Realtime voice session knobs. The hosted endpoint defines no timeout or
    # error severity, so both are policy choices made here.
    realtime_model: str = field(default_factory=lambda: _env("REALTIME_MODEL", "gpt-4o-realtime-preview"))
    realtime_voice: str = field(default_factory=lambda: _env("REALTIME_VOICE", "alloy"))
    transcription_model: str = field(default_factory=lambda: _env("TRANSCRIPTION_MODEL", "whisper-1"))
    realtime_connect_timeout: Optional[float] = field(
        default_factory=lambda: _env_timeout("REALTIME_CONNECT_TIMEOUT", 15.0)
    )
    voice_disconnect_on_error: bool = field(
        default_factory=lambda: _env_bool("VOICE_DISCONNECT_ON_ERROR", False)
    )

    @property
    def supabase_enabled(self) -> bool:
        """Return whether Supabase credentials are configured."""

        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()
