"""Tests for video library matching."""

import pytest

from fakes import FakeLLM
from media_engine.config import LibraryMatchConfig
from media_engine.domain.enums import TaskStatus
from media_engine.domain.errors import GenerationError
from media_engine.domain.models import Task
from media_engine.pipelines.video_library import (
    VideoLibraryPipeline,
    body_parts_of,
    filters_of,
)
from media_engine.repositories.library import (
    InMemoryVideoLibraryRepository,
    LibraryFilters,
    LibraryVideo,
)

REFERENCE = "https://img.example.com/office.jpg"


def _video(video_id: str, objects: set[str], body_parts: set[str], **kwargs) -> LibraryVideo:
    return LibraryVideo(
        id=video_id,
        title=f"Video {video_id}",
        video_url=f"https://videos.example.com/{video_id}.mp4",
        object_names=objects,
        body_parts=body_parts,
        **kwargs,
    )


@pytest.fixture
def library() -> InMemoryVideoLibraryRepository:
    return InMemoryVideoLibraryRepository(
        objects=["Chair", "Dumbbell"],
        videos=[
            _video("v1", {"Chair"}, {"chest", "legs"}),
            _video("v2", {"Chair"}, {"legs"}),
            _video("v3", set(), {"chest"}),
            _video("v4", set(), {"arms"}),
        ],
    )


@pytest.fixture
def build(repository, library, workdirs, storage, downloader, compositor, upstream):
    def _build(llm: FakeLLM) -> VideoLibraryPipeline:
        return VideoLibraryPipeline(
            repository,
            library=library,
            llm=llm,
            config=LibraryMatchConfig(upstream=upstream),
            storage=storage,
            downloader=downloader,
            workdirs=workdirs,
            compositor=compositor,
        )

    return _build


class TestVideoLibraryPipeline:
    @pytest.mark.asyncio
    async def test_object_matches_rank_first(self, repository, build) -> None:
        llm = FakeLLM({"matchedObject": "Chair"})
        task = await repository.create(
            Task.create(
                "video_library",
                {"image_input": [REFERENCE], "target_muscle_group": "chest, legs"},
            )
        )

        result = await build(llm).run(task)

        assert result["matched_object"] == "Chair"
        assert result["matched_body_parts"] == ["chest", "legs"]
        assert [v["id"] for v in result["matched_videos"]] == ["v1", "v2", "v3"]
        assert result["matched_videos"][0]["matched_bp_count"] == 2
        assert result["matched_videos"][2]["matched_object"] is None
        assert [p.percent for p in repository.progress_history(task.id)] == [10, 60, 100]
        assert (await repository.get(task.id)).progress.step_message == "Video matching completed"

    @pytest.mark.asyncio
    async def test_unknown_object_falls_back_to_body_parts(self, repository, build) -> None:
        task = await repository.create(
            Task.create(
                "video_library",
                {"image_input": [REFERENCE], "target_muscle_group": "chest, legs"},
            )
        )

        result = await build(FakeLLM({"matchedObject": "Treadmill"})).run(task)

        assert result["matched_object"] == "Universal"
        assert [v["id"] for v in result["matched_videos"]] == ["v1", "v3", "v2"]

    @pytest.mark.asyncio
    async def test_recognition_is_constrained_to_library_objects(
        self, repository, build
    ) -> None:
        llm = FakeLLM({"matchedObject": "Chair"})
        task = await repository.create(
            Task.create("video_library", {"image_input": [REFERENCE], "target_muscle_group": "legs"})
        )

        await build(llm).run(task)

        _, schema = llm.calls[0]
        description = schema.schema["properties"]["matchedObject"]["description"]
        assert '"Chair"' in description
        assert '"Dumbbell"' in description
        assert '"Universal"' in description

    @pytest.mark.asyncio
    async def test_without_image_only_body_parts_are_used(self, repository, build) -> None:
        llm = FakeLLM({"matchedObject": "Chair"})
        task = await repository.create(
            Task.create("video_library", {"target_muscle_group": "arms"})
        )

        result = await build(llm).run(task)

        assert llm.calls == []
        assert result["matched_object"] is None
        assert [v["id"] for v in result["matched_videos"]] == ["v4"]

    @pytest.mark.asyncio
    async def test_no_matches_fails_task(self, repository, build) -> None:
        task = await repository.create(
            Task.create("video_library", {"target_muscle_group": "neck"})
        )

        with pytest.raises(GenerationError):
            await build(FakeLLM({"matchedObject": "Chair"})).run(task)

        stored = await repository.get(task.id)
        assert stored.status == TaskStatus.FAILED
        assert stored.result["error"].startswith("No matching videos found")


class TestLibraryHelpers:
    def test_body_parts_of(self) -> None:
        assert body_parts_of(" chest , legs,, ") == ["chest", "legs"]

    @pytest.mark.parametrize(
        ("difficulty", "expected"),
        [("easy", "beginner"), ("medium", "intermediate"), ("hard", "advanced"), (None, None)],
    )
    def test_difficulty_map(self, difficulty: str | None, expected: str | None) -> None:
        assert filters_of({"difficulty": difficulty}).difficulty == expected

    def test_filter_defaults(self) -> None:
        filters = filters_of({})
        assert filters == LibraryFilters(difficulty=None, gender="unisex", age_group="all")

    @pytest.mark.asyncio
    async def test_in_memory_filters(self) -> None:
        library = InMemoryVideoLibraryRepository(
            videos=[
                _video("a", set(), {"legs"}, difficulty="beginner"),
                _video("b", set(), {"legs"}, difficulty="advanced"),
                _video("c", set(), {"legs"}, gender="female"),
                _video("d", set(), {"legs"}, access_type="premium"),
            ]
        )

        beginner = await library.find_by_body_part("legs", LibraryFilters(difficulty="beginner"), 10)
        male = await library.find_by_body_part("legs", LibraryFilters(gender="male"), 10)

        assert [v.id for v in beginner] == ["a"]
        assert [v.id for v in male] == ["a", "b"]
