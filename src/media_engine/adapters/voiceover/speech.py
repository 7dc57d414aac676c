"""REST speech synthesis on the generation gateway."""

import httpx

from media_engine.adapters.voiceover.base import (
    VoiceoverProvider,
    VoiceoverRequest,
    VoiceoverResult,
)
from media_engine.config import UpstreamConfig, settings
from media_engine.logging import get_logger
from media_engine.utils.http import ResilientHttpClient
from media_engine.utils.retry import RetryPolicy

logger = get_logger(__name__)


class GatewaySpeechProvider(VoiceoverProvider):
    """OpenAI-style ``/v1/audio/speech``: JSON in, audio bytes out."""

    VOICES = {"male": "onyx", "female": "shimmer"}
    DEFAULT_VOICE = "shimmer"

    def __init__(
        self,
        upstream: UpstreamConfig,
        model: str,
        http: ResilientHttpClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.upstream = upstream
        self.model = model
        self.http = http or ResilientHttpClient()
        self.policy = RetryPolicy(
            max_attempts=settings.http_max_attempts,
            base_delay=settings.http_base_delay,
            timeout=timeout or settings.generation_timeout,
        )

    @property
    def name(self) -> str:
        return f"gateway_speech:{self.model}"

    async def generate(self, request: VoiceoverRequest) -> VoiceoverResult:
        """Generate narration using the speech endpoint."""
        voice = self.resolve_voice(request)
        payload = {"model": self.model, "input": request.text, "voice": voice}

        logger.info(
            "speech_generation_started",
            text_length=len(request.text),
            voice=voice,
            model=self.model,
        )

        try:
            response = await self.http.send(
                "POST",
                self.upstream.url(self.upstream.speech_path),
                self.policy,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.upstream.api_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPStatusError as e:
            error_msg = f"TTS generation failed: {e.response.status_code}, {e.response.text[:500]}"
            logger.error("speech_api_error", error=error_msg)
            return VoiceoverResult(success=False, error_message=error_msg)
        except (httpx.HTTPError, TimeoutError) as e:
            logger.error("speech_generation_error", error=str(e) or type(e).__name__)
            return VoiceoverResult(success=False, error_message=str(e) or type(e).__name__)

        audio_data = response.content
        if not audio_data:
            return VoiceoverResult(success=False, error_message="Empty audio response")

        logger.info("speech_generation_completed", audio_size=len(audio_data), voice=voice)
        return VoiceoverResult(
            success=True,
            audio_data=audio_data,
            metadata={"provider": self.name, "voice": voice, "text_length": len(request.text)},
        )
