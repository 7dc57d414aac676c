"""Poll-based task status queries."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from media_engine.config import settings
from media_engine.domain.enums import TaskStatus
from media_engine.domain.errors import QueryInProgressError, TaskNotFoundError
from media_engine.domain.models import Task, utcnow
from media_engine.logging import get_logger
from media_engine.repositories.tasks import TaskRepository

logger = get_logger(__name__)

# Upstream and legacy status spellings -> task status
STATUS_MAP = {
    "pending": TaskStatus.PENDING,
    "queued": TaskStatus.PENDING,
    "processing": TaskStatus.PROCESSING,
    "running": TaskStatus.PROCESSING,
    "success": TaskStatus.SUCCESS,
    "completed": TaskStatus.SUCCESS,
    "succeeded": TaskStatus.SUCCESS,
    "failed": TaskStatus.FAILED,
    "error": TaskStatus.FAILED,
    "canceled": TaskStatus.CANCELED,
    "cancelled": TaskStatus.CANCELED,
}


def normalize_status(raw: str | None) -> TaskStatus:
    """Map any status spelling to a task status; unknown values read as pending."""
    return STATUS_MAP.get((raw or "").strip().lower(), TaskStatus.PENDING)


@dataclass
class TaskStatusEnvelope:
    """What a polling client sees."""

    task_id: str
    status: TaskStatus
    progress: dict[str, Any] | None
    result: dict[str, Any] | None
    stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
        }


class StatusQueryService:
    """Read-only view of task state.

    ``query`` is a pure read. ``refresh`` is the de-duplicated path used by
    the explicit query endpoint and the pending task sync: only one refresh
    per task id runs at a time, and it also reports whether a processing task
    has gone stale.
    """

    def __init__(
        self,
        repository: TaskRepository,
        stale_after: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.stale_after = stale_after or timedelta(minutes=settings.stale_task_minutes)
        self._clock = clock
        self._in_progress: set[str] = set()

    async def query(self, task_id: str) -> TaskStatusEnvelope:
        """Current status, progress and result of a task.

        Raises:
            TaskNotFoundError: If the task id is unknown.
        """
        task = await self.repository.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return self._envelope(task)

    async def refresh(self, task_id: str) -> TaskStatusEnvelope:
        """De-duplicated query.

        Raises:
            QueryInProgressError: If a refresh for the same task is running.
            TaskNotFoundError: If the task id is unknown.
        """
        if task_id in self._in_progress:
            logger.info("task_query_in_progress", task_id=task_id)
            raise QueryInProgressError(task_id)
        self._in_progress.add(task_id)
        try:
            envelope = await self.query(task_id)
        finally:
            self._in_progress.discard(task_id)

        if envelope.stale:
            logger.warning("task_stale", task_id=task_id, status=envelope.status.value)
        return envelope

    def is_stale(self, task: Task) -> bool:
        if normalize_status(task.status) is not TaskStatus.PROCESSING:
            return False
        last_seen = task.updated_at or task.created_at
        if task.progress is not None:
            last_seen = max(last_seen, task.progress.updated_at)
        return self._clock() - last_seen > self.stale_after

    def _envelope(self, task: Task) -> TaskStatusEnvelope:
        progress = None
        if task.progress is not None:
            progress = {
                "current_step": task.progress.current_step,
                "step_message": task.progress.step_message,
                "percent": task.progress.percent,
            }
        return TaskStatusEnvelope(
            task_id=task.id,
            status=normalize_status(task.status),
            progress=progress,
            result=task.result,
            stale=self.is_stale(task),
        )
