"""Image generation provider adapters."""

from media_engine.adapters.image_gen.base import ImageGenProvider, ImageGenRequest, ImageGenResult
from media_engine.adapters.image_gen.gateway import GatewayImageProvider, extract_image_url

__all__ = [
    "GatewayImageProvider",
    "ImageGenProvider",
    "ImageGenRequest",
    "ImageGenResult",
    "extract_image_url",
]
