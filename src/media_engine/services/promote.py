"""Copies a finished task's work directory to durable storage."""

import asyncio
import re
from typing import Any

from media_engine.domain.enums import TaskStatus
from media_engine.logging import get_logger
from media_engine.repositories.tasks import TaskRepository
from media_engine.services.storage import (
    LocalStorageService,
    StorageService,
    build_task_key,
    guess_content_type,
)
from media_engine.services.workdir import WorkDirectoryFactory

logger = get_logger(__name__)

# Result fields the promote pass is allowed to rewrite
URL_FIELDS = (
    "video_url",
    "video_only_url",
    "audio_url",
    "input_image_url",
    "image_urls",
    "original_image_urls",
)

SINGLE_FILES = {
    "final_video.mp4": "video_url",
    "video_only.mp4": "video_only_url",
    "audio.mp3": "audio_url",
}
INDEXED_FILE = re.compile(r"^(?P<kind>original_image|image)_(?P<index>\d+)\.\w+$")
INDEXED_FIELDS = {"image": "image_urls", "original_image": "original_image_urls"}


def result_field_for(filename: str) -> tuple[str, int | None] | None:
    """Result field (and list index for per-image files) a work file maps to."""
    if filename in SINGLE_FILES:
        return SINGLE_FILES[filename], None
    if filename.startswith("input_image."):
        return "input_image_url", None
    match = INDEXED_FILE.match(filename)
    if match:
        return INDEXED_FIELDS[match["kind"]], int(match["index"]) - 1
    return None


class PromoteService:
    """Detached post-success pass.

    Every published work directory file is uploaded under
    ``{prefix}/{YYYYMMDD}/{task_id}/{filename}``; files that fail to upload
    keep their local public URL. Only URL fields of the result are patched.
    """

    def __init__(
        self,
        repository: TaskRepository,
        storage: StorageService | None = None,
        workdirs: WorkDirectoryFactory | None = None,
    ) -> None:
        self.repository = repository
        self.storage = storage or LocalStorageService()
        self.workdirs = workdirs or WorkDirectoryFactory()

    async def promote(self, task_id: str) -> dict[str, Any]:
        """Upload a successful task's files and patch its URL fields.

        Returns:
            The patch that was applied (empty when nothing was promoted).
        """
        task = await self.repository.get(task_id)
        if task is None or task.status != TaskStatus.SUCCESS:
            logger.info("promote_skipped", task_id=task_id, reason="not_successful")
            return {}

        workdir = self.workdirs.for_task(task.id, task.created_at)
        files = await asyncio.to_thread(workdir.files)
        if not files:
            logger.info("promote_skipped", task_id=task_id, reason="no_files")
            return {}

        singles: dict[str, str] = {}
        indexed: dict[str, dict[int, str]] = {}
        failed = 0
        for path in files:
            data = await asyncio.to_thread(path.read_bytes)
            key = build_task_key(task.id, path.name, when=task.created_at)
            upload = await self.storage.upload(data, key, guess_content_type(path.name))
            if upload.success and upload.url:
                url = upload.url
            else:
                failed += 1
                url = workdir.public_url(path.name)
                logger.warning(
                    "promote_upload_fallback",
                    task_id=task_id,
                    filename=path.name,
                    error=upload.error,
                )

            target = result_field_for(path.name)
            if target is None:
                continue
            field_name, index = target
            if index is None:
                singles[field_name] = url
            else:
                indexed.setdefault(field_name, {})[index] = url

        patch: dict[str, Any] = dict(singles)
        for field_name, urls in indexed.items():
            patch[field_name] = [urls[i] for i in sorted(urls)]

        current = task.result or {}
        patch = {
            k: v
            for k, v in patch.items()
            if k in URL_FIELDS and (k in current or k == "video_only_url")
        }
        if patch:
            await self.repository.patch_result(task.id, patch)

        logger.info(
            "promote_completed",
            task_id=task_id,
            files=len(files),
            failed=failed,
            fields=sorted(patch),
        )
        return patch
