"""Generation pipelines, one per variant."""

from media_engine.pipelines.base import GenerationPipeline, RunContext, record_failure
from media_engine.pipelines.image_audio import ImageAudioPipeline, StreamingImageAudioPipeline
from media_engine.pipelines.registry import build_pipeline, parse_variant
from media_engine.pipelines.segment_video import SegmentVideoPipeline
from media_engine.pipelines.video_library import VideoLibraryPipeline

__all__ = [
    "GenerationPipeline",
    "ImageAudioPipeline",
    "RunContext",
    "SegmentVideoPipeline",
    "StreamingImageAudioPipeline",
    "VideoLibraryPipeline",
    "build_pipeline",
    "parse_variant",
    "record_failure",
]
