"""Base interface for vision/LLM providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: dict[str, Any] | None = None
    finish_reason: str | None = None


@dataclass
class VisionMessage:
    """A message that can include images for vision-capable models."""

    role: str  # "system", "user", "assistant"
    text: str
    image_urls: list[str] = field(default_factory=list)  # URLs or base64 data URIs


@dataclass(frozen=True)
class ResponseSchema:
    """A strict JSON schema the model's reply must follow."""

    name: str
    schema: dict[str, Any]

    def to_response_format(self) -> dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {"name": self.name, "strict": True, "schema": self.schema},
        }


class LLMProvider(ABC):
    """Abstract base class for vision-capable LLM providers.

    Implementations:
    - OpenAICompatibleProvider: chat-completions on the generation gateway
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        response_schema: ResponseSchema | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion from messages that may include images.

        Args:
            messages: List of vision messages with optional images
            response_schema: Strict JSON schema for the reply, if any
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with generated content and the finish reason
        """
        ...

    async def health_check(self) -> bool:
        """Check if the provider is available.

        Returns:
            True if provider is operational
        """
        return True
