"""Domain models - pure Python classes independent of database."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from media_engine.domain.enums import PipelineVariant, SegmentKind, TaskStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Progress:
    """Fine-grained progress of a running task."""

    current_step: str
    step_message: str
    percent: int
    started_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step,
            "step_message": self.step_message,
            "percent": self.percent,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Progress":
        return cls(
            current_step=data["current_step"],
            step_message=data.get("step_message", ""),
            percent=int(data.get("percent", 0)),
            started_at=datetime.fromisoformat(data["started_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class Task:
    """The unit of work driven through a generation pipeline."""

    id: str
    provider: str
    model: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    options: dict[str, Any] = field(default_factory=dict)
    progress: Progress | None = None
    result: dict[str, Any] | None = None
    credit_id: str | None = None
    user_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None

    @classmethod
    def create(
        cls,
        provider: PipelineVariant | str,
        options: dict[str, Any] | None = None,
        task_id: str | None = None,
        model: str | None = None,
        credit_id: str | None = None,
        user_id: str | None = None,
    ) -> "Task":
        """Create a new pending task, generating an id when none is given."""
        return cls(
            id=task_id or uuid4().hex,
            provider=str(provider),
            model=model,
            options=dict(options or {}),
            credit_id=credit_id,
            user_id=user_id,
        )


@dataclass
class Segment:
    """An intermediate artifact materialized in a task's work directory."""

    task_id: str
    kind: SegmentKind
    index: int
    path: Path
    url: str | None = None

    @property
    def exists(self) -> bool:
        return self.path.exists() and self.path.stat().st_size > 0


@dataclass
class TaskAck:
    """Immediate acknowledgement returned when a task is scheduled."""

    task_id: str
    status: TaskStatus
    already_running: bool = False
