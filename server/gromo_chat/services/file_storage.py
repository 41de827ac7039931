"""Supabase Storage uploads for chat attachments."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from supabase import Client

from .errors import FileTooLargeError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    url: str
    file_name: str
    path: str


def build_object_path(user_id: str, file_name: str, *, now_ms: Optional[int] = None) -> str:
    """``<user_id>/<epoch millis>.<ext>``; the client-supplied name never appears in the path."""

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = PurePath(file_name).suffix.lstrip(".")
    return f"{user_id}/{stamp}.{suffix}" if suffix else f"{user_id}/{stamp}"


class FileStorage:
    def __init__(
        self,
        client: Optional[Client],
        *,
        bucket: str = "chat-files",
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._max_bytes = max_bytes

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def upload(
        self,
        *,
        user_id: str,
        file_name: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> StoredFile:
        """Upload an attachment and return its public URL."""

        if len(data) > self._max_bytes:
            raise FileTooLargeError(len(data), self._max_bytes)
        if self._client is None:
            raise StorageError("File storage is not configured")

        client = self._client
        path = build_object_path(user_id, file_name)
        options = {"content-type": content_type or "application/octet-stream"}

        def _run() -> str:
            bucket = client.storage.from_(self._bucket)
            bucket.upload(path, data, options)
            return bucket.get_public_url(path)

        try:
            url = await asyncio.to_thread(_run)
        except Exception as exc:
            logger.exception("Upload of %s to bucket %s failed", file_name, self._bucket)
            raise StorageError(f"Failed to upload file: {exc}") from exc

        logger.info("Uploaded %s (%d bytes) to %s/%s", file_name, len(data), self._bucket, path)
        return StoredFile(url=url, file_name=file_name, path=path)
