"""Task scheduling and supervision."""

import asyncio
from collections.abc import Callable
from typing import Any

from media_engine.config import settings
from media_engine.domain.enums import PipelineVariant, TaskStatus
from media_engine.domain.errors import MediaEngineError
from media_engine.domain.models import Task, TaskAck
from media_engine.logging import get_logger, task_context
from media_engine.pipelines.base import GenerationPipeline, record_failure
from media_engine.pipelines.registry import build_pipeline
from media_engine.repositories.tasks import TaskRepository
from media_engine.services.promote import PromoteService

logger = get_logger(__name__)

PipelineFactory = Callable[[str], GenerationPipeline]


class TaskLifecycleController:
    """Starts pipeline runs in the background and guarantees a terminal state.

    At most one run per task id is in flight: within a process through the
    in-flight map, across API and worker processes through the repository's
    ``claim``. Every claimed run ends with ``success`` or ``failed``
    persisted, including when the run is cancelled. Finished tasks are never
    run again. Validation happens before anything is scheduled.
    """

    def __init__(
        self,
        repository: TaskRepository,
        pipeline_factory: PipelineFactory | None = None,
        promoter: PromoteService | None = None,
        promote: bool | None = None,
    ) -> None:
        self.repository = repository
        self._factory = pipeline_factory or (lambda variant: build_pipeline(variant, repository))
        self.promoter = promoter or PromoteService(repository)
        self.promote_enabled = settings.promote_to_storage if promote is None else promote
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._background: dict[str, asyncio.Task[Any]] = {}

    def is_running(self, task_id: str) -> bool:
        job = self._in_flight.get(task_id)
        return job is not None and not job.done()

    async def submit(
        self,
        provider: PipelineVariant | str,
        options: dict[str, Any] | None = None,
        *,
        task_id: str | None = None,
        model: str | None = None,
        credit_id: str | None = None,
        user_id: str | None = None,
    ) -> TaskAck:
        """Create a pending task and start it in this process.

        Raises:
            TaskValidationError: If the provider is unknown or required input
                is missing. Nothing is persisted in that case.
        """
        if task_id and self.is_running(task_id):
            return self._already_running(task_id)

        pipeline = self._factory(str(provider))
        task, _ = await self.create_if_absent(
            pipeline,
            options,
            task_id=task_id,
            model=model,
            credit_id=credit_id,
            user_id=user_id,
        )
        return self.schedule(task, pipeline)

    async def create(
        self,
        pipeline: GenerationPipeline | PipelineVariant | str,
        options: dict[str, Any] | None = None,
        *,
        task_id: str | None = None,
        model: str | None = None,
        credit_id: str | None = None,
        user_id: str | None = None,
    ) -> Task:
        """Validate and persist a pending task without starting it.

        An existing record with the same id is returned unchanged.
        """
        task, _ = await self.create_if_absent(
            pipeline,
            options,
            task_id=task_id,
            model=model,
            credit_id=credit_id,
            user_id=user_id,
        )
        return task

    async def create_if_absent(
        self,
        pipeline: GenerationPipeline | PipelineVariant | str,
        options: dict[str, Any] | None = None,
        *,
        task_id: str | None = None,
        model: str | None = None,
        credit_id: str | None = None,
        user_id: str | None = None,
    ) -> tuple[Task, bool]:
        """Like ``create``, also reporting whether this call inserted the row."""
        if not isinstance(pipeline, GenerationPipeline):
            pipeline = self._factory(str(pipeline))
        task = Task.create(
            provider=pipeline.variant,
            options=options,
            task_id=task_id,
            model=model,
            credit_id=credit_id,
            user_id=user_id,
        )
        pipeline.validate(task)

        existing = await self.repository.get(task.id) if task_id else None
        if existing is not None:
            logger.info("task_exists", task_id=existing.id, status=str(existing.status))
            return existing, False
        created = await self.repository.create(task)
        logger.info("task_created", task_id=created.id, variant=str(pipeline.variant))
        return created, True

    def schedule(self, task: Task, pipeline: GenerationPipeline | None = None) -> TaskAck:
        """Launch the pipeline for an existing task and return immediately.

        A finished task is acknowledged with its stored status and never run
        again. A task that is still running, here or in another process,
        returns an ``already_running`` acknowledgement without starting
        anything.
        """
        if task.status.is_terminal:
            logger.info("task_already_finished", task_id=task.id, status=str(task.status))
            return TaskAck(task_id=task.id, status=task.status)
        if self.is_running(task.id):
            return self._already_running(task.id)
        if task.status is TaskStatus.PROCESSING:
            return self._already_running(task.id, TaskStatus.PROCESSING)

        pipeline = pipeline or self._factory(task.provider)
        pipeline.validate(task)

        job = asyncio.get_running_loop().create_task(
            self._supervise(task, pipeline),
            name=f"generation-{task.id}",
        )
        self._in_flight[task.id] = job
        logger.info("task_scheduled", task_id=task.id, variant=str(pipeline.variant))
        return TaskAck(task_id=task.id, status=TaskStatus.PENDING)

    def _already_running(self, task_id: str, status: TaskStatus = TaskStatus.PENDING) -> TaskAck:
        logger.info("task_already_running", task_id=task_id, status=str(status))
        return TaskAck(task_id=task_id, status=status, already_running=True)

    async def _supervise(self, task: Task, pipeline: GenerationPipeline) -> None:
        # The claim is the cross-process guard; only its winner runs the pipeline
        try:
            claimed = await self.repository.claim(task.id)
        except Exception as e:
            logger.error("task_claim_failed", task_id=task.id, error=str(e))
            claimed = False
        if not claimed:
            self._in_flight.pop(task.id, None)
            logger.info("task_claimed_elsewhere", task_id=task.id)
            return

        error: BaseException | None = None
        try:
            with task_context(task.id, str(pipeline.variant)):
                await pipeline.run(task)
        except asyncio.CancelledError:
            error = MediaEngineError("Task execution was cancelled")
            raise
        except Exception as e:
            error = e
            logger.error("task_execution_failed", task_id=task.id, error=str(e) or type(e).__name__)
        finally:
            try:
                status = await self._ensure_terminal(task, pipeline, error)
            finally:
                self._in_flight.pop(task.id, None)
            if status is TaskStatus.SUCCESS and self.promote_enabled:
                self._spawn_promote(task.id)

    async def _ensure_terminal(
        self,
        task: Task,
        pipeline: GenerationPipeline,
        error: BaseException | None,
    ) -> TaskStatus | None:
        current = await self.repository.get(task.id)
        if current is None:
            logger.warning("refund_skipped_task_missing", task_id=task.id)
            return None
        if current.status.is_terminal:
            return current.status

        logger.warning("task_terminal_state_missing", task_id=task.id, status=str(current.status))
        await record_failure(
            self.repository,
            pipeline.tracker,
            task.id,
            error or MediaEngineError("Pipeline exited without a terminal state"),
        )
        return TaskStatus.FAILED

    def _spawn_promote(self, task_id: str) -> None:
        job = asyncio.get_running_loop().create_task(
            self.promoter.promote(task_id),
            name=f"promote-{task_id}",
        )
        self._background[task_id] = job

        def _done(finished: asyncio.Task[Any]) -> None:
            if self._background.get(task_id) is finished:
                self._background.pop(task_id, None)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(
                    "promote_failed",
                    task_id=task_id,
                    error=str(finished.exception()),
                )

        job.add_done_callback(_done)

    async def wait(self, task_id: str) -> Task | None:
        """Wait for a task's run (and its promote pass) to finish."""
        job = self._in_flight.get(task_id)
        if job is not None:
            await asyncio.gather(job, return_exceptions=True)
        promote = self._background.get(task_id)
        if promote is not None:
            await asyncio.gather(promote, return_exceptions=True)
        return await self.repository.get(task_id)

    async def execute(self, task_id: str) -> Task | None:
        """Schedule a stored task and wait for it; used by the worker.

        When another process already claimed the task, the stored record is
        returned as is.
        """
        task = await self.repository.get(task_id)
        if task is None:
            logger.warning("task_missing", task_id=task_id)
            return None
        if task.status.is_terminal:
            logger.info("task_already_finished", task_id=task_id, status=str(task.status))
            return task
        self.schedule(task)
        return await self.wait(task_id)

    async def shutdown(self) -> None:
        """Cancel running work and wait for terminal states to be written."""
        jobs = [*self._in_flight.values(), *self._background.values()]
        for job in jobs:
            job.cancel()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)
        logger.info("lifecycle_shutdown", cancelled=len(jobs))
