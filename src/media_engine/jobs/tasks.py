"""Celery task definitions."""

from typing import Any

from media_engine.logging import get_logger
from media_engine.utils import run_async
from media_engine.worker import celery_app

logger = get_logger(__name__)


def _task_repository() -> Any:
    from media_engine.repositories.tasks import SqlAlchemyTaskRepository

    return SqlAlchemyTaskRepository()


@celery_app.task(bind=True, name="generation.run_task")
def run_generation_task(self: Any, task_id: str) -> dict[str, Any]:
    """Run a stored pending task to completion inside the worker.

    Args:
        task_id: Id of a task created by the API or CLI

    Returns:
        Final status and result of the task
    """
    from media_engine.services.lifecycle import TaskLifecycleController

    logger.info("run_generation_started", task_id=task_id, celery_task_id=self.request.id)
    controller = TaskLifecycleController(_task_repository())
    task = run_async(controller.execute(task_id))

    if task is None:
        logger.error("run_generation_task_missing", task_id=task_id)
        return {"success": False, "task_id": task_id, "error": "Task not found"}

    logger.info("run_generation_finished", task_id=task_id, status=str(task.status))
    return {
        "success": str(task.status) == "success",
        "task_id": task_id,
        "status": str(task.status),
        "result": task.result,
    }


@celery_app.task(bind=True, name="maintenance.sync_pending_tasks")
def sync_pending_tasks_task(self: Any) -> dict[str, Any]:
    """Periodic sync of pending and processing tasks (every 10 minutes)."""
    from media_engine.services.sync import PendingTaskSync

    report = run_async(PendingTaskSync(_task_repository()).run())
    return report.to_dict()


@celery_app.task(bind=True, name="generation.merge_videos")
def merge_videos_task(self: Any, urls: list[str]) -> dict[str, Any]:
    """Merge videos at the given URLs and upload the result."""
    from media_engine.services.merge import VideoMergeService

    try:
        merged = run_async(VideoMergeService().merge_videos(urls))
    except Exception as e:
        logger.error("merge_videos_failed", error=str(e))
        return {"success": False, "error": str(e)}
    return {"success": True, "url": merged.url, "merged_count": merged.merged_count}
