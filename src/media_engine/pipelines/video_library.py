"""Video library matching: recognize an object, then look up curated videos."""

from typing import Any

from media_engine.adapters.llm.base import LLMProvider, VisionMessage
from media_engine.config import LibraryMatchConfig
from media_engine.domain.enums import Difficulty, LibraryMatchStep, PipelineVariant
from media_engine.domain.errors import GenerationError
from media_engine.domain.models import Task
from media_engine.domain.steps import LIBRARY_MATCH_PLAN
from media_engine.logging import get_logger
from media_engine.pipelines.base import GenerationPipeline, RunContext
from media_engine.pipelines.schemas import (
    ObjectRecognition,
    object_recognition_schema,
    parse_analysis,
)
from media_engine.repositories.library import LibraryFilters, VideoLibraryRepository
from media_engine.repositories.tasks import TaskRepository

logger = get_logger(__name__)

# UI difficulty labels -> stored difficulty levels
DIFFICULTY_MAP = {
    "easy": Difficulty.BEGINNER,
    "medium": Difficulty.INTERMEDIATE,
    "hard": Difficulty.ADVANCED,
}

SYSTEM_PROMPT = """You are an object recognition expert for a fitness video library.
Identify the single object in the image that best matches one of these names: {names}.
1. Only choose an object that is clearly visible.
2. The answer must be spelled exactly as it appears in the list.
3. If NONE of the objects in the list are visible in the image, return "{fallback}"."""


def body_parts_of(target: str) -> list[str]:
    """Split a comma separated muscle group selection into body part names."""
    return [part.strip() for part in target.split(",") if part.strip()]


def filters_of(options: dict[str, Any]) -> LibraryFilters:
    raw = options.get("difficulty")
    difficulty = DIFFICULTY_MAP.get(raw, raw) if raw else None
    return LibraryFilters(
        difficulty=str(difficulty) if difficulty else None,
        gender=options.get("voice_gender") or "unisex",
        age_group=options.get("age_group") or "all",
    )


class VideoLibraryPipeline(GenerationPipeline):
    """Matches curated library videos instead of generating new media.

    With a reference image the vision model picks one library object and
    videos mapped to that object are ranked first; remaining slots are
    filled with videos for each requested body part. Without an image only
    the body part lookup runs.
    """

    variant = PipelineVariant.VIDEO_LIBRARY
    plan = LIBRARY_MATCH_PLAN
    requires_reference_image = False

    def __init__(
        self,
        repository: TaskRepository,
        library: VideoLibraryRepository,
        llm: LLMProvider,
        config: LibraryMatchConfig,
        **kwargs: Any,
    ) -> None:
        super().__init__(repository, **kwargs)
        self.library = library
        self.llm = llm
        self.config = config

    @staticmethod
    def _target(task: Task) -> str:
        options = task.options
        return str(
            options.get("target_muscle_group")
            or options.get("user_feeling")
            or options.get("prompt")
            or "full_body"
        )

    async def analyze(self, ctx: RunContext) -> None:
        await self.tracker.advance(
            ctx.task_id,
            LibraryMatchStep.ANALYZING,
            "Analyzing image..." if ctx.reference_url else "Preparing body part matching...",
        )
        ctx.analysis = await self.recognize(ctx.reference_url) if ctx.reference_url else None

    async def recognize(self, image_url: str) -> str:
        """Name of the library object visible in the image, or the fallback object."""
        names = await self.library.list_object_names()
        fallback = self.config.fallback_object
        if not names:
            logger.info("library_has_no_objects")
            return fallback

        response = await self.llm.complete_with_vision(
            [
                VisionMessage(
                    role="system",
                    text=SYSTEM_PROMPT.format(names=", ".join(names), fallback=fallback),
                ),
                VisionMessage(
                    role="user",
                    text="Identify the object in this image that matches one from the database list.",
                    image_urls=[image_url],
                ),
            ],
            response_schema=object_recognition_schema(names),
        )
        matched = parse_analysis(response, ObjectRecognition).matched_object or fallback
        if matched not in names:
            logger.info("recognized_object_not_in_library", matched_object=matched)
            return fallback
        logger.info("object_recognized", matched_object=matched)
        return matched

    async def generate_assets(self, ctx: RunContext) -> None:
        await self.tracker.advance(
            ctx.task_id,
            LibraryMatchStep.MATCHING_VIDEOS,
            "Matching videos...",
        )
        body_parts = body_parts_of(self._target(ctx.task))
        filters = filters_of(ctx.task.options)
        limit = self.config.max_matches
        matched_object: str | None = ctx.analysis

        videos: list[dict[str, Any]] = []
        seen: set[str] = set()

        if matched_object and matched_object != self.config.fallback_object:
            matches = await self.library.find_by_object_and_body_parts(
                matched_object, body_parts, filters, limit
            )
            for match in matches:
                if match.video.id not in seen:
                    seen.add(match.video.id)
                    videos.append(match.video.to_result(match.object_name, match.matched_bp_count))

        for body_part in body_parts:
            if len(videos) >= limit:
                break
            for video in await self.library.find_by_body_part(
                body_part, filters, limit - len(videos)
            ):
                if video.id not in seen:
                    seen.add(video.id)
                    videos.append(video.to_result(None))

        videos = videos[:limit]
        logger.info(
            "library_videos_matched",
            matched_object=matched_object,
            body_parts=body_parts,
            count=len(videos),
        )
        if not videos:
            raise GenerationError(
                "No matching videos found for the selected body parts. "
                "Please try different options."
            )
        ctx.urls["matched_videos"] = videos
        ctx.urls["matched_body_parts"] = body_parts

    def completion_message(self) -> str:
        return "Video matching completed"

    def build_result(self, ctx: RunContext) -> dict[str, Any]:
        return {
            "matched_object": ctx.analysis,
            "matched_body_parts": ctx.urls["matched_body_parts"],
            "matched_videos": ctx.urls["matched_videos"],
            "target_muscle_group": self._target(ctx.task),
        }
