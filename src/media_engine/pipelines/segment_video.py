"""Sequential, frame-chained video segment pipeline."""

from typing import Any

from media_engine.adapters.llm.base import LLMProvider, VisionMessage
from media_engine.adapters.video_gen.base import VideoGenProvider, VideoGenRequest
from media_engine.config import SegmentVideoConfig
from media_engine.domain.enums import PipelineVariant, SegmentKind, SegmentVideoStep
from media_engine.domain.errors import GenerationError
from media_engine.domain.models import Segment, utcnow
from media_engine.domain.steps import SEGMENT_VIDEO_PLAN
from media_engine.logging import get_logger
from media_engine.pipelines.base import GenerationPipeline, RunContext
from media_engine.pipelines.schemas import (
    FITNESS_ANALYSIS_SCHEMA,
    FitnessAnalysis,
    dump_analysis,
    parse_analysis,
)
from media_engine.repositories.tasks import TaskRepository

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a professional fitness coach who demonstrates exercises on screen.
Analyze the environment in the image and plan a demonstration for the requested muscle group.
Only use objects that are clearly visible in the image; otherwise plan a bodyweight movement.
Plan 1 or 2 segments (never more than 3). Each segment is an 8 second clip whose prompt
describes continuous, visible movement with explicit joint positions and camera framing,
and whose narration describes only what is visibly happening in at most 20 words.
The video will be generated in {aspect_ratio} format."""


class SegmentVideoPipeline(GenerationPipeline):
    """Generates 1-3 clips in order, each conditioned on the previous clip's last frame.

    Segments are strictly sequential: segment k+1 needs the extracted last
    frame of segment k as its conditioning image. Clips are stream-copy
    concatenated into ``final_video.mp4``.
    """

    variant = PipelineVariant.FITNESS_VIDEO
    plan = SEGMENT_VIDEO_PLAN

    def __init__(
        self,
        repository: TaskRepository,
        llm: LLMProvider,
        video_gen: VideoGenProvider,
        config: SegmentVideoConfig,
        **kwargs: Any,
    ) -> None:
        super().__init__(repository, **kwargs)
        self.llm = llm
        self.video_gen = video_gen
        self.config = config

    def _aspect_ratio(self, ctx: RunContext) -> str:
        return str(ctx.task.options.get("aspect_ratio") or self.config.default_aspect_ratio)

    def _target(self, ctx: RunContext) -> str:
        options = ctx.task.options
        return str(options.get("target_muscle_group") or options.get("prompt") or "full_body")

    async def analyze(self, ctx: RunContext) -> None:
        await self.tracker.advance(
            ctx.task_id,
            SegmentVideoStep.ANALYZING,
            "Analyzing your environment...",
        )
        response = await self.llm.complete_with_vision(
            [
                VisionMessage(
                    role="system",
                    text=SYSTEM_PROMPT.format(aspect_ratio=self._aspect_ratio(ctx)),
                ),
                VisionMessage(
                    role="user",
                    text=f"Target muscle group: {self._target(ctx)}",
                    image_urls=[ctx.reference_url] if ctx.reference_url else [],
                ),
            ],
            response_schema=FITNESS_ANALYSIS_SCHEMA,
        )
        ctx.analysis = parse_analysis(response, FitnessAnalysis)
        logger.info(
            "analysis_completed",
            segments=len(ctx.analysis.exercise_plan.segments),
            identified_objects=ctx.analysis.identified_objects,
        )

    async def generate_assets(self, ctx: RunContext) -> None:
        analysis: FitnessAnalysis = ctx.analysis
        segments = analysis.exercise_plan.segments
        total = len(segments)
        conditioning_url = ctx.reference_url
        clips: list[Segment] = []
        generations: list[dict[str, Any]] = []

        for number, planned in enumerate(segments, start=1):
            await self.tracker.advance(
                ctx.task_id,
                SegmentVideoStep.generating(number),
                f"Generating video segment {number}/{total}...",
            )
            result = await self.video_gen.generate(
                VideoGenRequest(
                    prompt=planned.prompt,
                    image_urls=[conditioning_url] if conditioning_url else [],
                    aspect_ratio=self._aspect_ratio(ctx),
                )
            )
            if not result.success or not result.video_url:
                raise GenerationError(
                    result.error_message or f"Video segment {number} generation failed"
                )

            clip = ctx.workdir.segment(SegmentKind.VIDEO, number, "mp4")
            await self.downloader.download_to(result.video_url, clip.path)
            clip.url = result.video_url
            clips.append(clip)

            generations.append(
                {
                    "segment_number": number,
                    "job_id": result.job_id,
                    "video_url": result.video_url,
                    "conditioning_image_url": conditioning_url,
                    "attempts": result.attempts,
                    "generated_at": utcnow().isoformat(),
                }
            )
            await self.repository.update(
                ctx.task_id,
                options={**ctx.task.options, "video_generations": generations},
            )

            if number < total:
                await self.tracker.advance(
                    ctx.task_id,
                    SegmentVideoStep.extracting(number),
                    "Extracting frame for next segment...",
                )
                frame = ctx.workdir.segment(SegmentKind.FRAME, number, "jpg")
                await self.compositor.extract_last_frame(clip.path, frame.path)
                conditioning_url = await self.publish(ctx, frame.path)
                frame.url = conditioning_url

        ctx.urls["segments"] = clips
        ctx.urls["segment_urls"] = [c.url for c in clips]

    async def mux(self, ctx: RunContext) -> None:
        await self.tracker.advance(
            ctx.task_id,
            SegmentVideoStep.MERGING_VIDEOS,
            "Merging video segments...",
        )
        clips: list[Segment] = ctx.urls.pop("segments")
        final = await self.compositor.concat_segments(
            [c.path for c in clips],
            ctx.workdir.file("final_video.mp4"),
        )
        ctx.urls["video_url"] = ctx.workdir.public_url(final.name)
        duration = await self.compositor.probe_duration(final)
        ctx.urls["duration"] = round(duration, 3)
        logger.info("segments_merged", segments=len(clips), duration=duration)

    def completion_message(self) -> str:
        return "Fitness video generation completed successfully"

    def build_result(self, ctx: RunContext) -> dict[str, Any]:
        analysis: FitnessAnalysis = ctx.analysis
        result = {
            "analysis": dump_analysis(analysis),
            "video_url": ctx.urls["video_url"],
            "segment_urls": ctx.urls["segment_urls"],
            "duration": ctx.urls.get("duration"),
            "target_muscle_group": self._target(ctx),
            "aspect_ratio": self._aspect_ratio(ctx),
            "identified_objects": analysis.identified_objects,
            "safety_notes": analysis.safety_notes,
        }
        if "input_image_url" in ctx.urls:
            result["input_image_url"] = ctx.urls["input_image_url"]
        return result
