"""Task repository: the persistent record of every generation task.

The pipeline only ever mutates a task through ``update`` (an atomic
status/progress/result write) and ``patch_result`` (merges URL fields into
the result without touching status or progress). A run starts only after
``claim`` moved the task out of ``pending``.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from media_engine.db.models import TaskModel
from media_engine.domain.enums import TaskStatus
from media_engine.domain.errors import TaskNotFoundError
from media_engine.domain.models import Progress, Task, utcnow
from media_engine.logging import get_logger

logger = get_logger(__name__)


class TaskRepository(ABC):
    """Abstract task store."""

    @abstractmethod
    async def create(self, task: Task) -> Task:
        """Persist a new task."""
        ...

    @abstractmethod
    async def get(self, task_id: str) -> Task | None:
        """Load a task, or None if the id is unknown."""
        ...

    @abstractmethod
    async def update(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        progress: Progress | None = None,
        result: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        """Atomically set the given fields.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        ...

    @abstractmethod
    async def claim(self, task_id: str) -> bool:
        """Move a ``pending`` task to ``processing``.

        Returns True only for the single caller that made the transition;
        every other caller, in any process, gets False.
        """
        ...

    @abstractmethod
    async def patch_result(self, task_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into ``result``; last write wins per key."""
        ...

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[TaskStatus], limit: int = 100) -> list[Task]:
        """List tasks in any of the given statuses, oldest first."""
        ...


class InMemoryTaskRepository(TaskRepository):
    """Process-local repository used by tests and the CLI dry-run mode.

    ``history`` records every write as ``(task_id, fields)`` in order.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = asyncio.Lock()
        self.history: list[tuple[str, dict[str, Any]]] = []

    async def create(self, task: Task) -> Task:
        async with self._lock:
            self._tasks[task.id] = copy.deepcopy(task)
        return copy.deepcopy(task)

    async def get(self, task_id: str) -> Task | None:
        async with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    async def update(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        progress: Progress | None = None,
        result: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            fields: dict[str, Any] = {}
            if status is not None:
                task.status = status
                fields["status"] = status
            if progress is not None:
                task.progress = copy.deepcopy(progress)
                fields["progress"] = copy.deepcopy(progress)
            if result is not None:
                task.result = copy.deepcopy(result)
                fields["result"] = copy.deepcopy(result)
            if options is not None:
                task.options = copy.deepcopy(options)
                fields["options"] = copy.deepcopy(options)
            task.updated_at = utcnow()
            self.history.append((task_id, fields))

    async def claim(self, task_id: str) -> bool:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != TaskStatus.PENDING:
                return False
            task.status = TaskStatus.PROCESSING
            task.updated_at = utcnow()
            self.history.append((task_id, {"status": TaskStatus.PROCESSING}))
            return True

    async def patch_result(self, task_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            task.result = {**(task.result or {}), **copy.deepcopy(fields)}
            task.updated_at = utcnow()
            self.history.append((task_id, {"result_patch": copy.deepcopy(fields)}))

    async def list_by_status(self, statuses: Iterable[TaskStatus], limit: int = 100) -> list[Task]:
        wanted = set(statuses)
        async with self._lock:
            matches = sorted(
                (t for t in self._tasks.values() if t.status in wanted),
                key=lambda t: t.created_at,
            )
            return [copy.deepcopy(t) for t in matches[:limit]]

    def progress_history(self, task_id: str) -> list[Progress]:
        """Progress values written for a task, in write order."""
        return [f["progress"] for tid, f in self.history if tid == task_id and "progress" in f]


class SqlAlchemyTaskRepository(TaskRepository):
    """Repository backed by the ``ai_tasks`` table.

    Session work is blocking, so every call runs in a worker thread.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from media_engine.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def create(self, task: Task) -> Task:
        def _create() -> None:
            with self._session_factory() as session:
                session.add(
                    TaskModel(
                        id=task.id,
                        user_id=task.user_id,
                        provider=task.provider,
                        model=task.model,
                        status=str(task.status),
                        options=task.options,
                        progress=task.progress.to_dict() if task.progress else None,
                        result=task.result,
                        credit_id=task.credit_id,
                        created_at=task.created_at,
                    )
                )
                session.commit()

        await asyncio.to_thread(_create)
        logger.debug("task_created", task_id=task.id, provider=task.provider)
        return task

    async def get(self, task_id: str) -> Task | None:
        def _get() -> Task | None:
            with self._session_factory() as session:
                row = session.get(TaskModel, task_id)
                return _to_domain(row) if row else None

        return await asyncio.to_thread(_get)

    async def update(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        progress: Progress | None = None,
        result: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        def _update() -> None:
            with self._session_factory() as session:
                row = session.get(TaskModel, task_id, with_for_update=True)
                if row is None:
                    raise TaskNotFoundError(task_id)
                if status is not None:
                    row.status = str(status)
                if progress is not None:
                    row.progress = progress.to_dict()
                if result is not None:
                    row.result = result
                if options is not None:
                    row.options = options
                row.updated_at = utcnow()
                session.commit()

        await asyncio.to_thread(_update)

    async def patch_result(self, task_id: str, fields: dict[str, Any]) -> None:
        def _patch() -> None:
            with self._session_factory() as session:
                row = session.get(TaskModel, task_id, with_for_update=True)
                if row is None:
                    raise TaskNotFoundError(task_id)
                # Reassign so the JSON column is flagged dirty
                row.result = {**(row.result or {}), **fields}
                row.updated_at = utcnow()
                session.commit()

        await asyncio.to_thread(_patch)

    async def claim(self, task_id: str) -> bool:
        def _claim() -> bool:
            with self._session_factory() as session:
                # Conditional update so exactly one worker wins the row
                claimed = session.execute(
                    update(TaskModel)
                    .where(TaskModel.id == task_id)
                    .where(TaskModel.status == str(TaskStatus.PENDING))
                    .values(status=str(TaskStatus.PROCESSING), updated_at=utcnow())
                )
                session.commit()
                return claimed.rowcount == 1

        return await asyncio.to_thread(_claim)

    async def list_by_status(self, statuses: Iterable[TaskStatus], limit: int = 100) -> list[Task]:
        wanted = [str(s) for s in statuses]

        def _list() -> list[Task]:
            with self._session_factory() as session:
                rows = session.execute(
                    select(TaskModel)
                    .where(TaskModel.status.in_(wanted))
                    .order_by(TaskModel.created_at)
                    .limit(limit)
                ).scalars()
                return [_to_domain(row) for row in rows]

        return await asyncio.to_thread(_list)


def _to_domain(row: TaskModel) -> Task:
    try:
        status = TaskStatus(row.status)
    except ValueError:
        status = TaskStatus.PENDING
    return Task(
        id=row.id,
        provider=row.provider,
        model=row.model,
        status=status,
        options=dict(row.options or {}),
        progress=Progress.from_dict(row.progress) if row.progress else None,
        result=dict(row.result) if row.result is not None else None,
        credit_id=row.credit_id,
        user_id=row.user_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
