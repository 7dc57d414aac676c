"""Blob storage for task artifacts."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from media_engine.config import settings
from media_engine.domain.models import utcnow
from media_engine.logging import get_logger
from media_engine.utils.http import write_atomic

logger = get_logger(__name__)

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def guess_content_type(filename: str) -> str:
    """Guess MIME type from a file name."""
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def build_task_key(
    task_id: str,
    filename: str,
    prefix: str | None = None,
    when: datetime | None = None,
) -> str:
    """Storage key for a task artifact: ``{prefix}/{YYYYMMDD}/{task_id}/{filename}``."""
    prefix = prefix if prefix is not None else settings.storage_key_prefix
    date = (when or utcnow()).strftime("%Y%m%d")
    return f"{prefix}/{date}/{task_id}/{filename}"


@dataclass
class UploadResult:
    """Outcome of a storage upload."""

    success: bool
    url: str | None = None
    key: str | None = None
    error: str | None = None


class StorageService(ABC):
    """Durable blob storage."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def upload(self, data: bytes, key: str, content_type: str) -> UploadResult:
        """Store ``data`` under ``key`` and return its durable URL.

        Failures are reported in the result, not raised.
        """
        ...


class LocalStorageService(StorageService):
    """Stores objects under a local directory served at ``public_url``."""

    def __init__(
        self,
        base_path: Path | None = None,
        public_url: str | None = None,
    ) -> None:
        self.base_path = base_path or settings.storage_root
        self.public_url = (public_url or settings.storage_public_url).rstrip("/")

    @property
    def name(self) -> str:
        return "local"

    def path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Storage key escapes base path: {key}")
        return path

    async def upload(self, data: bytes, key: str, content_type: str) -> UploadResult:
        try:
            path = self.path_for(key)
            await asyncio.to_thread(write_atomic, path, data)
        except (OSError, ValueError) as e:
            logger.error("storage_upload_failed", key=key, error=str(e))
            return UploadResult(success=False, key=key, error=str(e))

        url = f"{self.public_url}/{key}"
        logger.info(
            "storage_upload_completed",
            key=key,
            size=len(data),
            content_type=content_type,
        )
        return UploadResult(success=True, url=url, key=key)
