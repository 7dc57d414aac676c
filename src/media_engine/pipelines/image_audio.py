"""Parallel image generation with narration, merged into a captioned slideshow."""

import asyncio
from typing import Any

from media_engine.adapters.image_gen.base import ImageGenProvider, ImageGenRequest
from media_engine.adapters.llm.base import LLMProvider, VisionMessage
from media_engine.adapters.voiceover.base import VoiceoverProvider, VoiceoverRequest
from media_engine.config import ImageAudioConfig
from media_engine.domain.enums import ImageAudioStep, PipelineVariant, SegmentKind
from media_engine.domain.errors import GenerationError
from media_engine.domain.steps import IMAGE_AUDIO_PLAN
from media_engine.logging import get_logger
from media_engine.pipelines.base import GenerationPipeline, RunContext
from media_engine.pipelines.schemas import (
    VERSE_ANALYSIS_SCHEMA,
    VerseAnalysis,
    dump_analysis,
    parse_analysis,
)
from media_engine.repositories.tasks import TaskRepository
from media_engine.utils.http import write_atomic
from media_engine.utils.retry import RetryPolicy, retry_any_error, with_retry

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a visual theologian. Look at the user's photo and listen to how they feel.
Choose one Bible verse that speaks to that feeling and reply with:
- image_generation_prompt: how to transform the photo into a reverent, cinematic scene that
  keeps the people and setting recognizable while expressing the verse visually;
- audio_script: a short spoken narration (under 40 words) that quotes the verse and offers
  one sentence of encouragement;
- verse_reference: the book, chapter and verse, e.g. "Psalm 23:4".
The final video is in {aspect_ratio} format."""

DEFAULT_VOICE_GENDER = "female"


class ImageAudioPipeline(GenerationPipeline):
    """Generates N images in parallel, captions them and narrates the script.

    The N image calls run concurrently and are each retried independently;
    everything after image generation is sequential. Each image is shown for
    an equal share of the narration.
    """

    variant = PipelineVariant.VERSE_IMAGES
    plan = IMAGE_AUDIO_PLAN

    def __init__(
        self,
        repository: TaskRepository,
        llm: LLMProvider,
        image_gen: ImageGenProvider,
        voiceover: VoiceoverProvider,
        config: ImageAudioConfig,
        *,
        sleep: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(repository, **kwargs)
        self.llm = llm
        self.image_gen = image_gen
        self.voiceover = voiceover
        self.config = config
        self._sleep = sleep
        self.image_policy = RetryPolicy(
            max_attempts=config.image_max_attempts,
            base_delay=config.image_retry_delay,
            retry_predicate=retry_any_error,
            backoff="linear",
        )

    def _aspect_ratio(self, ctx: RunContext) -> str:
        return str(ctx.task.options.get("aspect_ratio") or self.config.default_aspect_ratio)

    async def analyze(self, ctx: RunContext) -> None:
        feeling = ctx.task.options.get("user_feeling") or ctx.task.options.get("prompt") or ""
        await self.tracker.advance(
            ctx.task_id,
            ImageAudioStep.ANALYZING,
            "Analyzing your photo and feelings...",
        )
        response = await self.llm.complete_with_vision(
            [
                VisionMessage(
                    role="system",
                    text=SYSTEM_PROMPT.format(aspect_ratio=self._aspect_ratio(ctx)),
                ),
                VisionMessage(
                    role="user",
                    text=f"How I feel: {feeling}" if feeling else "Choose a verse for this photo.",
                    image_urls=[ctx.reference_url] if ctx.reference_url else [],
                ),
            ],
            response_schema=VERSE_ANALYSIS_SCHEMA,
        )
        ctx.analysis = parse_analysis(response, VerseAnalysis)
        logger.info("analysis_completed", verse_reference=ctx.analysis.verse_reference)

    async def generate_assets(self, ctx: RunContext) -> None:
        analysis: VerseAnalysis = ctx.analysis
        count = self.config.image_count
        await self.tracker.advance(
            ctx.task_id,
            ImageAudioStep.GENERATING_IMAGES,
            f"Generating {count} images...",
        )

        reference: bytes | None = None
        if self.config.image_request_format == "multipart" and ctx.reference_url:
            reference = await self.downloader.download(ctx.reference_url)

        request = ImageGenRequest(
            prompt=analysis.image_generation_prompt,
            reference_image=reference,
            reference_url=ctx.reference_url,
            size=self.config.image_size,
        )
        jobs = [
            asyncio.ensure_future(self._generate_image(request, index))
            for index in range(1, count + 1)
        ]
        try:
            image_urls = await asyncio.gather(*jobs)
        except Exception:
            for job in jobs:
                job.cancel()
            # Collect sibling outcomes so a second failure is not left unretrieved
            await asyncio.gather(*jobs, return_exceptions=True)
            raise

        await self.tracker.advance(
            ctx.task_id,
            ImageAudioStep.SAVING_ORIGINAL_IMAGES,
            "Saving original images...",
        )
        originals = []
        for index, url in enumerate(image_urls, start=1):
            original = ctx.workdir.segment(SegmentKind.ORIGINAL_IMAGE, index, "png")
            await self.downloader.download_to(url, original.path)
            originals.append(original)
        ctx.urls["originals"] = originals
        ctx.urls["original_image_urls"] = [
            ctx.workdir.public_url(o.path.name) for o in originals
        ]

    async def _generate_image(self, request: ImageGenRequest, index: int) -> str:
        async def attempt() -> str:
            result = await self.image_gen.generate(request)
            if not result.success or not result.image_url:
                raise GenerationError(result.error_message or "Image generation returned no URL")
            return result.image_url

        return await with_retry(
            attempt,
            self.image_policy,
            name="image_generation",
            sleep=self._sleep,
            image_index=index,
        )

    async def post_process(self, ctx: RunContext) -> None:
        analysis: VerseAnalysis = ctx.analysis
        await self.tracker.advance(
            ctx.task_id,
            ImageAudioStep.ADDING_TEXT_OVERLAY,
            "Adding text overlay to images...",
        )
        captioned = []
        for original in ctx.urls["originals"]:
            data = await asyncio.to_thread(original.path.read_bytes)
            rendered = await self.compositor.overlay_caption(data, analysis.audio_script)
            image = ctx.workdir.segment(SegmentKind.IMAGE, original.index, "png")
            await asyncio.to_thread(write_atomic, image.path, rendered)
            captioned.append(image)
        ctx.urls["images"] = captioned
        ctx.urls["image_urls"] = [ctx.workdir.public_url(i.path.name) for i in captioned]

        await self.tracker.advance(
            ctx.task_id,
            ImageAudioStep.GENERATING_AUDIO,
            "Generating narration audio...",
        )
        gender = ctx.task.options.get("voice_gender") or DEFAULT_VOICE_GENDER
        speech = await self.voiceover.generate(
            VoiceoverRequest(text=analysis.audio_script, voice_gender=gender)
        )
        if not speech.success or not speech.audio_data:
            raise GenerationError(speech.error_message or "Narration audio generation failed")
        audio = ctx.workdir.file("audio.mp3")
        await asyncio.to_thread(write_atomic, audio, speech.audio_data)
        ctx.urls["audio"] = audio
        ctx.urls["audio_url"] = ctx.workdir.public_url(audio.name)
        logger.info("narration_generated", voice=self.voiceover.name, size=len(speech.audio_data))

    async def mux(self, ctx: RunContext) -> None:
        await self.tracker.advance(
            ctx.task_id,
            ImageAudioStep.MERGING_VIDEO,
            "Merging images and audio into video...",
        )
        final = await self.compositor.images_with_audio_to_video(
            [i.path for i in ctx.urls["images"]],
            ctx.urls["audio"],
            ctx.workdir.path,
        )
        ctx.urls["video_url"] = ctx.workdir.public_url(final.name)

    def completion_message(self) -> str:
        return "Video generation completed successfully"

    def build_result(self, ctx: RunContext) -> dict[str, Any]:
        analysis: VerseAnalysis = ctx.analysis
        result = {
            "analysis": dump_analysis(analysis),
            "video_url": ctx.urls["video_url"],
            "image_urls": ctx.urls["image_urls"],
            "original_image_urls": ctx.urls["original_image_urls"],
            "audio_url": ctx.urls["audio_url"],
            "verse_reference": analysis.verse_reference,
            "user_feeling": ctx.task.options.get("user_feeling"),
        }
        if "input_image_url" in ctx.urls:
            result["input_image_url"] = ctx.urls["input_image_url"]
        return result


class StreamingImageAudioPipeline(ImageAudioPipeline):
    """Same stages; narration comes from the streaming speech provider."""

    variant = PipelineVariant.VERSE_IMAGES_STREAMING
