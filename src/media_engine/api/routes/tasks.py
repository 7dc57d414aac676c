"""Generation task endpoints."""

from typing import Any

from fastapi import APIRouter, Header, HTTPException, status
from pydantic import BaseModel, Field

from media_engine.api.deps import LifecycleDep, PendingSyncDep, StatusServiceDep
from media_engine.config import settings
from media_engine.domain.errors import (
    QueryInProgressError,
    TaskNotFoundError,
    TaskValidationError,
)
from media_engine.logging import get_logger
from media_engine.services.status import TaskStatusEnvelope

router = APIRouter(prefix="/tasks", tags=["Tasks"])
logger = get_logger(__name__)


class CreateTaskRequest(BaseModel):
    """Request to start a generation task."""

    provider: str = Field(..., description="Pipeline variant, e.g. fitness_video")
    options: dict[str, Any] = Field(default_factory=dict)
    task_id: str | None = Field(None, max_length=64)
    model: str | None = Field(None, max_length=100)
    credit_id: str | None = Field(None, max_length=64)
    user_id: str | None = Field(None, max_length=64)


class TaskAckResponse(BaseModel):
    """Response when a task is accepted."""

    task_id: str
    status: str
    already_running: bool = False


class TaskStatusResponse(BaseModel):
    """Current state of a task."""

    task_id: str
    status: str
    progress: dict[str, Any] | None = None
    result: dict[str, Any] | None = None


class SyncResponse(BaseModel):
    message: str
    processed: int
    checked: int
    failed: int
    stale: list[str] = Field(default_factory=list)
    errors: list[str] | None = None


def _to_response(envelope: TaskStatusEnvelope) -> TaskStatusResponse:
    return TaskStatusResponse(**envelope.to_dict())


@router.post(
    "",
    response_model=TaskAckResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a generation task",
)
async def create_task(request: CreateTaskRequest, lifecycle: LifecycleDep) -> TaskAckResponse:
    """Validate and start a task; returns before any generation work is done."""
    try:
        if settings.dispatch_mode == "celery":
            from media_engine.jobs.tasks import run_generation_task

            task, created = await lifecycle.create_if_absent(
                request.provider,
                request.options,
                task_id=request.task_id,
                model=request.model,
                credit_id=request.credit_id,
                user_id=request.user_id,
            )
            if created:
                run_generation_task.delay(task.id)
                logger.info("task_enqueued", task_id=task.id)
            return TaskAckResponse(
                task_id=task.id,
                status=str(task.status),
                already_running=not created and not task.status.is_terminal,
            )

        ack = await lifecycle.submit(
            request.provider,
            request.options,
            task_id=request.task_id,
            model=request.model,
            credit_id=request.credit_id,
            user_id=request.user_id,
        )
    except TaskValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return TaskAckResponse(
        task_id=ack.task_id,
        status=ack.status.value,
        already_running=ack.already_running,
    )


@router.post(
    "/sync-pending",
    response_model=SyncResponse,
    summary="Sync unfinished tasks",
    description="Cron entry point; requires the bearer secret when one is configured.",
)
async def sync_pending_tasks(
    sync: PendingSyncDep,
    authorization: str | None = Header(default=None),
) -> SyncResponse:
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
    report = await sync.run()
    return SyncResponse(**report.to_dict())


@router.get("/{task_id}", response_model=TaskStatusResponse, summary="Poll task status")
async def get_task(task_id: str, status_service: StatusServiceDep) -> TaskStatusResponse:
    try:
        envelope = await status_service.query(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found") from e
    return _to_response(envelope)


@router.post(
    "/{task_id}/query",
    response_model=TaskStatusResponse,
    summary="Query task status (de-duplicated)",
)
async def query_task(task_id: str, status_service: StatusServiceDep) -> TaskStatusResponse:
    try:
        envelope = await status_service.refresh(task_id)
    except QueryInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except TaskNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found") from e
    return _to_response(envelope)
