"""Step progress tracking for running tasks."""

from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

from media_engine.domain.enums import TaskStatus
from media_engine.domain.models import Progress, utcnow
from media_engine.domain.steps import StepPlan
from media_engine.logging import get_logger
from media_engine.repositories.tasks import TaskRepository

logger = get_logger(__name__)


class StepProgressTracker:
    """Turns pipeline events into persisted ``Progress`` values.

    Every ``advance`` is a single repository write that sets both the coarse
    status and the progress blob. Percent never decreases for a task, and
    re-advancing to the current step only refreshes ``updated_at``.
    """

    def __init__(
        self,
        repository: TaskRepository,
        plan: StepPlan,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.plan = plan
        self._clock = clock
        self._current: dict[str, Progress] = {}

    async def current(self, task_id: str) -> Progress | None:
        if task_id not in self._current:
            task = await self.repository.get(task_id)
            if task is not None and task.progress is not None:
                self._current[task_id] = task.progress
        return self._current.get(task_id)

    async def advance(
        self,
        task_id: str,
        step: StrEnum,
        message: str,
        percent: int | None = None,
        result: dict[str, Any] | None = None,
    ) -> Progress:
        """Record that ``task_id`` reached ``step``.

        Args:
            task_id: Task being advanced.
            step: Step from this tracker's plan.
            message: Human-readable step message.
            percent: Overrides the plan's percent for the step.
            result: Written in the same update; only used with the terminal step.

        Returns:
            The persisted progress value.
        """
        now = self._clock()
        previous = await self.current(task_id)
        target = self.plan.percent_for(step) if percent is None else percent
        target = max(0, min(100, target))

        if previous is not None and previous.current_step == str(step):
            progress = Progress(
                current_step=previous.current_step,
                step_message=previous.step_message,
                percent=previous.percent,
                started_at=previous.started_at,
                updated_at=now,
            )
        else:
            if previous is not None and target < previous.percent:
                logger.warning(
                    "progress_regression_clamped",
                    task_id=task_id,
                    step=str(step),
                    requested=target,
                    current=previous.percent,
                )
                target = previous.percent
            progress = Progress(
                current_step=str(step),
                step_message=message,
                percent=target,
                started_at=previous.started_at if previous else now,
                updated_at=now,
            )

        terminal = self.plan.is_terminal(step)
        status = TaskStatus.SUCCESS if terminal else TaskStatus.PROCESSING
        await self.repository.update(
            task_id,
            status=status,
            progress=progress,
            result=result if terminal else None,
        )
        self._current[task_id] = progress

        logger.info(
            "task_progress",
            task_id=task_id,
            step=progress.current_step,
            percent=progress.percent,
            message=progress.step_message,
        )
        return progress

    async def fail(self, task_id: str, message: str, result: dict[str, Any]) -> Progress:
        """Persist ``failed`` with the error result; percent is left where it was."""
        now = self._clock()
        previous = await self.current(task_id)
        progress = Progress(
            current_step=str(self.plan.failed),
            step_message=message,
            percent=previous.percent if previous else 0,
            started_at=previous.started_at if previous else now,
            updated_at=now,
        )
        await self.repository.update(
            task_id,
            status=TaskStatus.FAILED,
            progress=progress,
            result=result,
        )
        self._current[task_id] = progress
        return progress

    def forget(self, task_id: str) -> None:
        self._current.pop(task_id, None)
