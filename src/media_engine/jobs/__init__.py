"""Celery job definitions."""

from media_engine.jobs.tasks import (
    merge_videos_task,
    run_generation_task,
    sync_pending_tasks_task,
)

__all__ = [
    "merge_videos_task",
    "run_generation_task",
    "sync_pending_tasks_task",
]
