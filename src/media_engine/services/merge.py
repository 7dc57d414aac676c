"""Merging user-selected videos into one file."""

import asyncio
import tempfile
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from media_engine.domain.errors import StorageError, TaskValidationError
from media_engine.logging import get_logger
from media_engine.services.compositor import MediaCompositor
from media_engine.services.storage import LocalStorageService, StorageService
from media_engine.utils.http import ResilientDownloader

logger = get_logger(__name__)

MIN_MERGE_VIDEOS = 2


@dataclass
class MergeResult:
    url: str
    key: str
    merged_count: int


class VideoMergeService:
    """Downloads videos, stream-copy concatenates them and uploads the result."""

    def __init__(
        self,
        storage: StorageService | None = None,
        downloader: ResilientDownloader | None = None,
        compositor: MediaCompositor | None = None,
    ) -> None:
        self.storage = storage or LocalStorageService()
        self.downloader = downloader or ResilientDownloader()
        self.compositor = compositor or MediaCompositor()

    @staticmethod
    def validate(urls: list[str]) -> None:
        if len(urls) < MIN_MERGE_VIDEOS:
            raise TaskValidationError("Please provide at least 2 video URLs to merge")
        for url in urls:
            if not isinstance(url, str) or not url.startswith(("http://", "https://")):
                raise TaskValidationError(f"Invalid video URL: {url}")

    async def merge_videos(self, urls: list[str]) -> MergeResult:
        """Merge the videos at ``urls`` in order.

        Raises:
            TaskValidationError: If fewer than two http(s) URLs are given.
            StorageError: If the merged video cannot be uploaded.
        """
        self.validate(urls)
        logger.info("video_merge_started", count=len(urls))

        with tempfile.TemporaryDirectory(prefix="merge_") as tmp:
            work = Path(tmp)
            clips = []
            for index, url in enumerate(urls, start=1):
                clips.append(await self.downloader.download_to(url, work / f"segment_{index}.mp4"))
            merged = await self.compositor.concat_segments(clips, work / "merged.mp4")
            data = await asyncio.to_thread(merged.read_bytes)

        key = f"merged/video/{uuid4()}.mp4"
        upload = await self.storage.upload(data, key, "video/mp4")
        if not upload.success or not upload.url:
            raise StorageError(upload.error or "Failed to upload merged video")

        logger.info("video_merge_completed", key=key, size=len(data), count=len(urls))
        return MergeResult(url=upload.url, key=key, merged_count=len(urls))
