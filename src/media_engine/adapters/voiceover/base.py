"""Base interface for speech synthesis providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class VoiceoverRequest:
    """Request for narration audio."""

    text: str
    voice_gender: str | None = None  # "male" or "female"; providers map it to a voice
    voice_id: str | None = None  # Provider-specific voice, overrides the gender mapping
    output_format: str = "mp3"
    options: dict[str, Any] | None = None


@dataclass
class VoiceoverResult:
    """Result from speech synthesis."""

    success: bool
    audio_data: bytes | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class VoiceoverProvider(ABC):
    """Abstract base class for speech synthesis providers.

    Implementations:
    - GatewaySpeechProvider: REST speech endpoint returning audio bytes
    - StreamingSpeechProvider: binary websocket protocol streaming audio frames
    """

    # gender -> provider voice
    VOICES: dict[str, str] = {}
    DEFAULT_VOICE: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def generate(self, request: VoiceoverRequest) -> VoiceoverResult:
        """Generate narration audio from text.

        Args:
            request: Voiceover request with text and voice settings

        Returns:
            VoiceoverResult with audio data or error information
        """
        ...

    def resolve_voice(self, request: VoiceoverRequest) -> str:
        if request.voice_id:
            return request.voice_id
        return self.VOICES.get((request.voice_gender or "").lower(), self.DEFAULT_VOICE)

    async def list_voices(self) -> list[dict[str, Any]]:
        """List the voices this provider maps genders to."""
        return [{"gender": gender, "voice_id": voice} for gender, voice in self.VOICES.items()]

    async def health_check(self) -> bool:
        """Check if the provider is available and healthy.

        Returns:
            True if provider is operational, False otherwise
        """
        return True
