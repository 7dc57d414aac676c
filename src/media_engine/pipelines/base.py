"""Shared shape of every generation pipeline.

A run is ``prepare -> analyze -> generate_assets -> post_process -> mux ->
finalize``. Variants override the stages; the base class owns the work
directory, reference image normalization, artifact publishing and failure
persistence.
"""

import asyncio
import base64
import binascii
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar
from urllib.parse import urlparse

import structlog

from media_engine.config import settings
from media_engine.domain.enums import PipelineVariant
from media_engine.domain.errors import TaskNotFoundError, TaskValidationError
from media_engine.domain.models import Task
from media_engine.domain.steps import StepPlan
from media_engine.logging import get_logger
from media_engine.repositories.tasks import TaskRepository
from media_engine.services.compositor import MediaCompositor
from media_engine.services.progress import StepProgressTracker
from media_engine.services.storage import (
    LocalStorageService,
    StorageService,
    build_task_key,
    guess_content_type,
)
from media_engine.services.workdir import WorkDirectory, WorkDirectoryFactory
from media_engine.utils.http import ResilientDownloader, write_atomic
from media_engine.utils.retry import RetryPolicy

logger = get_logger(__name__)


def reference_image_of(options: dict[str, Any]) -> str | None:
    """First reference image named in task options, if any."""
    images = options.get("image_input")
    if isinstance(images, list) and images:
        return str(images[0])
    if isinstance(images, str) and images:
        return images
    url = options.get("image_url") or options.get("reference_image")
    return str(url) if url else None


def needs_rehost(source: str) -> bool:
    """Whether a reference image must be copied to durable storage first.

    Local paths, ``data:`` URIs and URLs on transient hosts are not reliably
    fetchable by upstream services.
    """
    if source.startswith("data:"):
        return True
    parsed = urlparse(source)
    if parsed.scheme not in ("http", "https"):
        return True
    return (parsed.hostname or "") in settings.transient_image_hosts


def image_extension(hint: str) -> str:
    lowered = hint.lower()
    if "jpeg" in lowered or "jpg" in lowered:
        return "jpg"
    if "webp" in lowered:
        return "webp"
    return "png"


def decode_data_uri(uri: str) -> tuple[bytes, str]:
    """Decode a base64 ``data:`` URI into bytes and its media type."""
    header, _, encoded = uri.partition(",")
    media_type = header[5:].split(";", 1)[0] or "application/octet-stream"
    if ";base64" not in header:
        raise TaskValidationError("Only base64 data URIs are supported for reference images")
    try:
        return base64.b64decode(encoded, validate=True), media_type
    except (binascii.Error, ValueError) as e:
        raise TaskValidationError("Reference image data URI is not valid base64") from e


@dataclass
class RunContext:
    """Mutable state of one pipeline run."""

    task: Task
    workdir: WorkDirectory
    reference_url: str | None = None
    analysis: Any = None
    urls: dict[str, Any] = field(default_factory=dict)

    @property
    def task_id(self) -> str:
        return self.task.id


async def record_failure(
    repository: TaskRepository,
    tracker: StepProgressTracker,
    task_id: str,
    error: BaseException,
) -> bool:
    """Persist ``failed`` with refund-eligible metadata.

    Returns:
        False when the task record is gone, in which case the refund
        bookkeeping is skipped.
    """
    task = await repository.get(task_id)
    if task is None:
        logger.warning("refund_skipped_task_missing", task_id=task_id)
        return False

    message = str(error) or type(error).__name__
    result = {
        "error": message,
        "error_type": type(error).__name__,
        "stack": "".join(traceback.format_exception(error)),
        "credit_id": task.credit_id,
        "refund_eligible": True,
    }
    try:
        await tracker.fail(task_id, message, result)
    except TaskNotFoundError:
        logger.warning("refund_skipped_task_missing", task_id=task_id)
        return False

    logger.info(
        "task_failed_recorded",
        task_id=task_id,
        credit_id=task.credit_id,
        error_type=result["error_type"],
    )
    return True


class GenerationPipeline(ABC):
    """Base class of the pipeline variants."""

    variant: ClassVar[PipelineVariant]
    plan: ClassVar[StepPlan]
    requires_reference_image: ClassVar[bool] = True

    def __init__(
        self,
        repository: TaskRepository,
        *,
        storage: StorageService | None = None,
        downloader: ResilientDownloader | None = None,
        workdirs: WorkDirectoryFactory | None = None,
        compositor: MediaCompositor | None = None,
    ) -> None:
        self.repository = repository
        self.storage = storage or LocalStorageService()
        self.downloader = downloader or ResilientDownloader(
            RetryPolicy(
                max_attempts=settings.download_max_attempts,
                base_delay=settings.download_base_delay,
                timeout=settings.download_timeout,
            )
        )
        self.workdirs = workdirs or WorkDirectoryFactory()
        self.compositor = compositor or MediaCompositor()
        self.tracker = StepProgressTracker(repository, self.plan)

    def validate(self, task: Task) -> None:
        """Reject a task that cannot run. Called before scheduling.

        Raises:
            TaskValidationError: If required input is missing.
        """
        if self.requires_reference_image and not reference_image_of(task.options):
            raise TaskValidationError("A reference image is required")

    async def run(self, task: Task) -> dict[str, Any]:
        """Run every stage and persist the terminal state.

        On failure the task is persisted as ``failed`` and the error is
        re-raised.
        """
        with structlog.contextvars.bound_contextvars(task_id=task.id, variant=str(self.variant)):
            ctx = RunContext(task=task, workdir=self.workdirs.for_task(task.id, task.created_at))
            logger.info("pipeline_started", workdir=str(ctx.workdir.path))
            try:
                self.validate(task)
                await self.prepare(ctx)
                await self.analyze(ctx)
                await self.generate_assets(ctx)
                await self.post_process(ctx)
                await self.mux(ctx)
                result = await self.finalize(ctx)
            except Exception as e:
                logger.error(
                    "pipeline_failed",
                    error=str(e) or type(e).__name__,
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                await record_failure(self.repository, self.tracker, task.id, e)
                raise
            finally:
                self.tracker.forget(task.id)

            logger.info("pipeline_completed", result_keys=sorted(result))
            return result

    async def prepare(self, ctx: RunContext) -> None:
        """Create the work directory and make the reference image durable."""
        await asyncio.to_thread(ctx.workdir.ensure)
        source = reference_image_of(ctx.task.options)
        if source:
            ctx.reference_url = await self.normalize_reference(ctx, source)

    @abstractmethod
    async def analyze(self, ctx: RunContext) -> None: ...

    @abstractmethod
    async def generate_assets(self, ctx: RunContext) -> None: ...

    async def post_process(self, ctx: RunContext) -> None:
        return None

    async def mux(self, ctx: RunContext) -> None:
        return None

    @abstractmethod
    def build_result(self, ctx: RunContext) -> dict[str, Any]:
        """Final result written together with the terminal step."""
        ...

    def completion_message(self) -> str:
        return "Generation completed successfully"

    async def finalize(self, ctx: RunContext) -> dict[str, Any]:
        result = self.build_result(ctx)
        await self.tracker.advance(
            ctx.task_id,
            self.plan.terminal,
            self.completion_message(),
            result=result,
        )
        return result

    async def normalize_reference(self, ctx: RunContext, source: str) -> str:
        """Re-host a transient reference image as ``input_image.{ext}``."""
        if not needs_rehost(source):
            return source

        if source.startswith("data:"):
            data, media_type = decode_data_uri(source)
            ext = image_extension(media_type)
        else:
            fetch_url = source
            if not urlparse(source).scheme:
                fetch_url = f"{settings.app_url.rstrip('/')}/{source.lstrip('/')}"
            data = await self.downloader.download(fetch_url)
            ext = image_extension(source)

        path = ctx.workdir.file(f"input_image.{ext}")
        await asyncio.to_thread(write_atomic, path, data)
        url = await self.publish(ctx, path)
        ctx.urls["input_image_url"] = url
        logger.info("reference_image_rehosted", filename=path.name, url=url)
        return url

    async def publish(self, ctx: RunContext, path: Path) -> str:
        """Upload a work directory file; fall back to its local public URL."""
        data = await asyncio.to_thread(path.read_bytes)
        key = build_task_key(ctx.task_id, path.name, when=ctx.task.created_at)
        upload = await self.storage.upload(data, key, guess_content_type(path.name))
        if upload.success and upload.url:
            return upload.url
        logger.warning("storage_upload_fallback", filename=path.name, error=upload.error)
        return ctx.workdir.public_url(path.name)
