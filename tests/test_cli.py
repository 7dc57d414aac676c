"""Tests for the CLI and the Celery job entry points."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from media_engine.cli import app
from media_engine.domain.enums import TaskStatus
from media_engine.domain.models import Task
from media_engine.jobs.tasks import (
    merge_videos_task,
    run_generation_task,
    sync_pending_tasks_task,
)
from media_engine.repositories.tasks import InMemoryTaskRepository
from media_engine.utils import run_async

runner = CliRunner()


@pytest.fixture
def memory_repository() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


def _seed(repository: InMemoryTaskRepository, status: TaskStatus, result: dict | None) -> Task:
    task = run_async(repository.create(Task.create("verse_images", {}, task_id="task-1")))
    run_async(repository.update(task.id, status=status, result=result))
    return task


class TestCli:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "Media Engine v0.1.0" in result.output

    def test_status_of_unknown_task(self, memory_repository) -> None:
        with patch("media_engine.cli._repository", return_value=memory_repository):
            result = runner.invoke(app, ["status", "missing"])

        assert result.exit_code == 1
        assert "Task not found: missing" in result.output

    def test_status_prints_result(self, memory_repository) -> None:
        _seed(memory_repository, TaskStatus.SUCCESS, {"video_url": "http://testserver/v.mp4"})

        with patch("media_engine.cli._repository", return_value=memory_repository):
            result = runner.invoke(app, ["status", "task-1"])

        assert result.exit_code == 0
        assert "success" in result.output
        assert "http://testserver/v.mp4" in result.output

    def test_generate_rejects_unknown_provider(self, memory_repository) -> None:
        with patch("media_engine.cli._repository", return_value=memory_repository):
            result = runner.invoke(app, ["generate", "hologram", "--image", "https://a/b.jpg"])

        assert result.exit_code == 1
        assert "Invalid task" in result.output

    def test_generate_requires_reference_image(self, memory_repository) -> None:
        with patch("media_engine.cli._repository", return_value=memory_repository):
            result = runner.invoke(app, ["generate", "fitness_video", "--target", "legs"])

        assert result.exit_code == 1
        assert "A reference image is required" in result.output

    def test_sync_pending(self, memory_repository) -> None:
        with patch("media_engine.cli._repository", return_value=memory_repository):
            result = runner.invoke(app, ["sync-pending"])

        assert result.exit_code == 0
        assert "Processed" in result.output
        assert "Checked" in result.output

    def test_merge_needs_two_urls(self) -> None:
        result = runner.invoke(app, ["merge", "https://a.example.com/1.mp4"])

        assert result.exit_code == 1
        assert "Merge failed" in result.output


class TestJobs:
    def test_run_missing_task(self, memory_repository) -> None:
        with patch("media_engine.jobs.tasks._task_repository", return_value=memory_repository):
            result = run_generation_task("missing")

        assert result == {"success": False, "task_id": "missing", "error": "Task not found"}

    def test_run_finished_task_is_not_rerun(self, memory_repository) -> None:
        _seed(memory_repository, TaskStatus.SUCCESS, {"video_url": "http://testserver/v.mp4"})

        with patch("media_engine.jobs.tasks._task_repository", return_value=memory_repository):
            result = run_generation_task("task-1")

        assert result["success"] is True
        assert result["status"] == "success"
        assert result["result"] == {"video_url": "http://testserver/v.mp4"}

    def test_run_claimed_task_is_left_alone(self, memory_repository) -> None:
        _seed(memory_repository, TaskStatus.PROCESSING, None)

        with patch("media_engine.jobs.tasks._task_repository", return_value=memory_repository):
            result = run_generation_task("task-1")

        assert result["success"] is False
        assert result["status"] == "processing"
        assert run_async(memory_repository.get("task-1")).status == TaskStatus.PROCESSING

    def test_sync_with_nothing_pending(self, memory_repository) -> None:
        with patch("media_engine.jobs.tasks._task_repository", return_value=memory_repository):
            result = sync_pending_tasks_task()

        assert result["processed"] == 0
        assert result["message"] == "No pending or processing tasks found"

    def test_merge_reports_validation_errors(self) -> None:
        result = merge_videos_task(["https://a.example.com/1.mp4"])

        assert result == {
            "success": False,
            "error": "Please provide at least 2 video URLs to merge",
        }
