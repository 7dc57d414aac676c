"""Adapters for external generation services."""

from media_engine.adapters.image_gen.base import ImageGenProvider
from media_engine.adapters.llm.base import LLMProvider
from media_engine.adapters.video_gen.base import VideoGenProvider
from media_engine.adapters.voiceover.base import VoiceoverProvider

__all__ = [
    "ImageGenProvider",
    "LLMProvider",
    "VideoGenProvider",
    "VoiceoverProvider",
]
