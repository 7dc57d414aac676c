"""Periodic sync of unfinished tasks."""

from dataclasses import dataclass, field
from typing import Any

from media_engine.config import settings
from media_engine.domain.enums import TaskStatus
from media_engine.domain.errors import QueryInProgressError
from media_engine.logging import get_logger
from media_engine.repositories.tasks import TaskRepository
from media_engine.services.status import StatusQueryService

logger = get_logger(__name__)


@dataclass
class SyncReport:
    processed: int = 0
    checked: int = 0
    failed: int = 0
    stale: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if self.processed == 0:
            message = "No pending or processing tasks found"
        else:
            message = f"Processed {self.processed} tasks"
        data: dict[str, Any] = {
            "message": message,
            "processed": self.processed,
            "checked": self.checked,
            "failed": self.failed,
            "stale": self.stale,
        }
        if self.errors:
            data["errors"] = self.errors
        return data


class PendingTaskSync:
    """Re-queries pending and processing tasks through the de-duplicated path.

    Stale processing tasks are reported, never resumed: a run that died with
    its process is left for an operator to fail or retry.
    """

    def __init__(
        self,
        repository: TaskRepository,
        status: StatusQueryService | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.repository = repository
        self.status = status or StatusQueryService(repository)
        self.batch_size = batch_size or settings.sync_batch_size

    async def run(self) -> SyncReport:
        tasks = [
            *await self.repository.list_by_status([TaskStatus.PENDING], self.batch_size),
            *await self.repository.list_by_status([TaskStatus.PROCESSING], self.batch_size),
        ]
        report = SyncReport(processed=len(tasks))
        if not tasks:
            logger.info("sync_pending_tasks_empty")
            return report

        logger.info("sync_pending_tasks_started", tasks=len(tasks))
        for task in tasks:
            try:
                envelope = await self.status.refresh(task.id)
            except QueryInProgressError:
                logger.info("sync_task_skipped", task_id=task.id, reason="query_in_progress")
                continue
            except Exception as e:
                report.failed += 1
                report.errors.append(f"Task {task.id}: {e}")
                logger.error("sync_task_failed", task_id=task.id, error=str(e))
                continue

            report.checked += 1
            if envelope.stale:
                report.stale.append(task.id)

        logger.info(
            "sync_pending_tasks_completed",
            processed=report.processed,
            checked=report.checked,
            failed=report.failed,
            stale=len(report.stale),
        )
        return report
