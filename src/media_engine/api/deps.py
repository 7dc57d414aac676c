"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from media_engine.repositories.tasks import TaskRepository
from media_engine.services.lifecycle import TaskLifecycleController
from media_engine.services.merge import VideoMergeService
from media_engine.services.status import StatusQueryService
from media_engine.services.sync import PendingTaskSync


@lru_cache
def get_task_repository() -> TaskRepository:
    """Get the process-wide task repository."""
    from media_engine.repositories.tasks import SqlAlchemyTaskRepository

    return SqlAlchemyTaskRepository()


TaskRepositoryDep = Annotated[TaskRepository, Depends(get_task_repository)]


@lru_cache
def get_lifecycle_controller() -> TaskLifecycleController:
    """Get the controller that owns in-process pipeline runs."""
    return TaskLifecycleController(get_task_repository())


@lru_cache
def get_status_service() -> StatusQueryService:
    """Get the status service; shared so query de-duplication spans requests."""
    return StatusQueryService(get_task_repository())


def get_pending_sync() -> PendingTaskSync:
    return PendingTaskSync(get_task_repository(), get_status_service())


def get_merge_service() -> VideoMergeService:
    return VideoMergeService()


LifecycleDep = Annotated[TaskLifecycleController, Depends(get_lifecycle_controller)]
StatusServiceDep = Annotated[StatusQueryService, Depends(get_status_service)]
PendingSyncDep = Annotated[PendingTaskSync, Depends(get_pending_sync)]
MergeServiceDep = Annotated[VideoMergeService, Depends(get_merge_service)]
