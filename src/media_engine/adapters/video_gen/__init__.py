"""Video generation provider adapters."""

from media_engine.adapters.video_gen.base import VideoGenProvider, VideoGenRequest, VideoGenResult
from media_engine.adapters.video_gen.gateway import GatewayVideoProvider

__all__ = [
    "GatewayVideoProvider",
    "VideoGenProvider",
    "VideoGenRequest",
    "VideoGenResult",
]
