"""Base interface for image generation providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ImageGenRequest:
    """Request for image generation."""

    prompt: str
    reference_image: bytes | None = None  # Sent as the edit source when present
    reference_filename: str = "reference.png"
    reference_url: str | None = None  # JSON backends take a URL instead of bytes
    size: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class ImageGenResult:
    """Result from image generation."""

    success: bool
    image_url: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ImageGenProvider(ABC):
    """Abstract base class for image generation providers.

    Implementations:
    - GatewayImageProvider: images endpoint of the generation gateway
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def generate(self, request: ImageGenRequest) -> ImageGenResult:
        """Generate one image from the given request.

        Args:
            request: Image generation request with prompt and reference image

        Returns:
            ImageGenResult with the image URL or error information
        """
        ...

    async def health_check(self) -> bool:
        """Check if the provider is available.

        Returns:
            True if provider is operational
        """
        return True
