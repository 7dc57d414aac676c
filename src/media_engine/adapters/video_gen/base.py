"""Base interface for video generation providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class VideoGenResult:
    """Result from video generation."""

    success: bool
    video_url: str | None = None
    job_id: str | None = None
    error_message: str | None = None
    attempts: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VideoGenRequest:
    """Request for image-conditioned video generation."""

    prompt: str
    image_urls: list[str] = field(default_factory=list)
    aspect_ratio: str = "9:16"  # Vertical
    options: dict[str, Any] = field(default_factory=dict)


class VideoGenProvider(ABC):
    """Abstract base class for video generation providers.

    Implementations:
    - GatewayVideoProvider: asynchronous job API of the generation gateway
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def generate(self, request: VideoGenRequest) -> VideoGenResult:
        """Generate a video clip, waiting until the job is terminal.

        Args:
            request: Video generation request with prompt and conditioning image

        Returns:
            VideoGenResult with the clip URL or error information
        """
        ...

    @abstractmethod
    async def check_status(self, job_id: str) -> dict[str, Any]:
        """Check the status of an async generation job.

        Args:
            job_id: The job ID returned when the job was created

        Returns:
            Raw job status payload
        """
        ...

    async def health_check(self) -> bool:
        """Check if the provider is available and healthy.

        Returns:
            True if provider is operational, False otherwise
        """
        return True
