"""Pipeline lookup by variant (the task's ``provider`` field)."""

from typing import Any

from media_engine.adapters.image_gen.gateway import GatewayImageProvider
from media_engine.adapters.llm.openai import OpenAICompatibleProvider
from media_engine.adapters.video_gen.gateway import GatewayVideoProvider
from media_engine.adapters.voiceover.speech import GatewaySpeechProvider
from media_engine.adapters.voiceover.streaming import StreamingSpeechProvider
from media_engine.config import (
    ImageAudioConfig,
    LibraryMatchConfig,
    SegmentVideoConfig,
    Settings,
    settings,
)
from media_engine.domain.enums import PipelineVariant
from media_engine.domain.errors import TaskValidationError
from media_engine.pipelines.base import GenerationPipeline
from media_engine.pipelines.image_audio import ImageAudioPipeline, StreamingImageAudioPipeline
from media_engine.pipelines.segment_video import SegmentVideoPipeline
from media_engine.pipelines.video_library import VideoLibraryPipeline
from media_engine.repositories.library import VideoLibraryRepository
from media_engine.repositories.tasks import TaskRepository


def parse_variant(value: str) -> PipelineVariant:
    """Resolve a provider name to a variant.

    Raises:
        TaskValidationError: If the name is not a known variant.
    """
    try:
        return PipelineVariant(value)
    except ValueError as e:
        known = ", ".join(v.value for v in PipelineVariant)
        raise TaskValidationError(f"Unknown provider '{value}' (expected one of: {known})") from e


def build_pipeline(
    variant: PipelineVariant | str,
    repository: TaskRepository,
    *,
    library: VideoLibraryRepository | None = None,
    config: Settings | None = None,
    **kwargs: Any,
) -> GenerationPipeline:
    """Build the pipeline for a variant with providers from settings.

    Args:
        variant: Pipeline variant or its provider name.
        repository: Task repository the pipeline persists progress to.
        library: Video library repository (library variant only).
        config: Settings to build from; the process settings by default.
        **kwargs: Passed through to the pipeline (storage, downloader, ...).
    """
    s = config or settings
    variant = parse_variant(str(variant))

    if variant is PipelineVariant.FITNESS_VIDEO:
        video_config = SegmentVideoConfig.from_settings(s)
        return SegmentVideoPipeline(
            repository,
            llm=OpenAICompatibleProvider(video_config.upstream, video_config.vision_model),
            video_gen=GatewayVideoProvider(video_config),
            config=video_config,
            **kwargs,
        )

    if variant in (PipelineVariant.VERSE_IMAGES, PipelineVariant.VERSE_IMAGES_STREAMING):
        image_config = ImageAudioConfig.from_settings(s)
        llm = OpenAICompatibleProvider(image_config.upstream, image_config.vision_model)
        image_gen = GatewayImageProvider(
            image_config.upstream,
            image_config.image_model,
            request_format=image_config.image_request_format,
            size=image_config.image_size,
        )
        if variant is PipelineVariant.VERSE_IMAGES_STREAMING:
            return StreamingImageAudioPipeline(
                repository,
                llm=llm,
                image_gen=image_gen,
                voiceover=StreamingSpeechProvider(),
                config=image_config,
                **kwargs,
            )
        return ImageAudioPipeline(
            repository,
            llm=llm,
            image_gen=image_gen,
            voiceover=GatewaySpeechProvider(image_config.upstream, image_config.tts_model),
            config=image_config,
            **kwargs,
        )

    library_config = LibraryMatchConfig.from_settings(s)
    if library is None:
        from media_engine.repositories.library import SqlAlchemyVideoLibraryRepository

        library = SqlAlchemyVideoLibraryRepository()
    return VideoLibraryPipeline(
        repository,
        library=library,
        llm=OpenAICompatibleProvider(library_config.upstream, library_config.vision_model),
        config=library_config,
        **kwargs,
    )
