"""OpenAI-compatible chat-completions provider."""

from typing import Any

import httpx

from media_engine.adapters.llm.base import (
    LLMProvider,
    LLMResponse,
    ResponseSchema,
    VisionMessage,
)
from media_engine.config import UpstreamConfig, settings
from media_engine.domain.errors import AnalysisError
from media_engine.logging import get_logger
from media_engine.utils.http import ResilientHttpClient
from media_engine.utils.retry import RetryPolicy

logger = get_logger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Vision chat-completions against an OpenAI-compatible gateway."""

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

        if not self.upstream.api_key:
            logger.warning("Upstream API key not configured")

    @property
    def name(self) -> str:
        return f"openai_compatible:{self.model}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.upstream.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _message_payload(message: VisionMessage) -> dict[str, Any]:
        if not message.image_urls:
            return {"role": message.role, "content": message.text}
        content: list[dict[str, Any]] = [{"type": "text", "text": message.text}]
        for url in message.image_urls:
            content.append({"type": "image_url", "image_url": {"url": url}})
        return {"role": message.role, "content": content}

    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        response_schema: ResponseSchema | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using the chat-completions endpoint."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [self._message_payload(m) for m in messages],
        }
        if response_schema is not None:
            payload["response_format"] = response_schema.to_response_format()
        if max_tokens:
            payload["max_tokens"] = max_tokens

        logger.debug(
            "vision_request",
            model=self.model,
            message_count=len(messages),
            schema=response_schema.name if response_schema else None,
        )

        data = await self.http.post_json(
            self.upstream.url(self.upstream.vision_path),
            payload,
            self.policy,
            headers=self._headers(),
        )

        choices = data.get("choices") or []
        if not choices:
            raise AnalysisError("No choices returned")
        choice = choices[0]
        usage = data.get("usage") or {}

        logger.info(
            "vision_response",
            model=self.model,
            tokens_used=usage.get("total_tokens", 0),
            finish_reason=choice.get("finish_reason"),
        )

        return LLMResponse(
            content=(choice.get("message") or {}).get("content") or "",
            model=data.get("model", self.model),
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
            raw_response=data,
            finish_reason=choice.get("finish_reason"),
        )

    async def health_check(self) -> bool:
        """Check if the gateway is reachable."""
        if not self.upstream.api_key:
            return False

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(
                    self.upstream.url("/v1/models"),
                    headers={"Authorization": f"Bearer {self.upstream.api_key}"},
                )
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error("vision_health_check_failed", error=str(e))
            return False
