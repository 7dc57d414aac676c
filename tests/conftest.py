"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set test environment before importing app modules
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="media_engine_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'test.db'}"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_RESULT_BACKEND"] = "redis://localhost:6379/1"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["WORK_ROOT"] = str(_TEST_ROOT / "work")
os.environ["STORAGE_ROOT"] = str(_TEST_ROOT / "storage")
os.environ["UPSTREAM_API_KEY"] = "test-key"

from fakes import (  # noqa: E402
    FakeCompositor,
    FakeDownloader,
    FakeLLM,
    FakeStorage,
    FakeVideoGen,
    fitness_analysis,
)


@pytest.fixture(scope="session")
def test_client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from media_engine.main import app

    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def api_overrides(test_client: TestClient) -> Generator[dict, None, None]:
    """Dependency overrides applied to the app for a single test."""
    from media_engine.main import app

    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
def repository():
    """In-memory task repository."""
    from media_engine.repositories.tasks import InMemoryTaskRepository

    return InMemoryTaskRepository()


@pytest.fixture
def workdirs(tmp_path: Path):
    """Work directory factory rooted in a temp dir."""
    from media_engine.services.workdir import WorkDirectoryFactory

    return WorkDirectoryFactory(
        root=tmp_path / "work",
        public_prefix="/video",
        app_url="http://testserver",
    )


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def compositor() -> FakeCompositor:
    return FakeCompositor()


@pytest.fixture
def video_gen() -> FakeVideoGen:
    return FakeVideoGen()


@pytest.fixture
def upstream():
    from media_engine.config import UpstreamConfig

    return UpstreamConfig(base_url="https://gw.example.com", api_key="test-key")


@pytest.fixture
def segment_pipeline_factory(repository, storage, downloader, workdirs, compositor, upstream):
    """Build a segment video pipeline wired to fakes."""
    from media_engine.config import SegmentVideoConfig
    from media_engine.pipelines.segment_video import SegmentVideoPipeline

    def build(llm: FakeLLM | None = None, video_gen: FakeVideoGen | None = None, **overrides):
        return SegmentVideoPipeline(
            overrides.pop("repository", repository),
            llm=llm or FakeLLM(fitness_analysis(2)),
            video_gen=video_gen or FakeVideoGen(),
            config=SegmentVideoConfig(upstream=upstream),
            storage=overrides.pop("storage", storage),
            downloader=overrides.pop("downloader", downloader),
            workdirs=overrides.pop("workdirs", workdirs),
            compositor=overrides.pop("compositor", compositor),
        )

    return build
