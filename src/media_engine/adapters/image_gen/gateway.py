"""Image generation through the gateway's images endpoint."""

import re
from typing import Any

import httpx

from media_engine.adapters.image_gen.base import (
    ImageGenProvider,
    ImageGenRequest,
    ImageGenResult,
)
from media_engine.config import UpstreamConfig, settings
from media_engine.logging import get_logger
from media_engine.utils.http import ResilientHttpClient
from media_engine.utils.retry import RetryPolicy

logger = get_logger(__name__)

MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\((https?://[^)\s]+)\)")


def extract_image_url(data: dict[str, Any]) -> str | None:
    """Find the image URL in a gateway response.

    Checks ``data[0].url``, then a top-level ``url``, then a markdown image in
    ``choices[0].message.content``.
    """
    items = data.get("data")
    if isinstance(items, list) and items and isinstance(items[0], dict) and items[0].get("url"):
        return items[0]["url"]
    if data.get("url"):
        return data["url"]
    choices = data.get("choices") or []
    if choices:
        content = (choices[0].get("message") or {}).get("content") or ""
        match = MARKDOWN_IMAGE.search(content)
        if match:
            return match.group(1)
        if content.startswith(("http://", "https://")):
            return content.strip()
    return None


class GatewayImageProvider(ImageGenProvider):
    """Generates images from a reference image and prompt.

    ``request_format="multipart"`` posts the reference bytes as form data to
    the edits endpoint; ``"json"`` posts a JSON body with the reference URL.
    Each call is a single HTTP attempt; callers own the retry loop.
    """

    def __init__(
        self,
        upstream: UpstreamConfig,
        model: str,
        request_format: str = "multipart",
        size: str = "4K",
        http: ResilientHttpClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.upstream = upstream
        self.model = model
        self.request_format = request_format
        self.size = size
        self.http = http or ResilientHttpClient()
        self.policy = RetryPolicy(max_attempts=1, timeout=timeout or settings.generation_timeout)

    @property
    def name(self) -> str:
        return f"gateway_image:{self.model}"

    def _request_kwargs(self, request: ImageGenRequest) -> dict[str, Any]:
        size = request.size or self.size
        auth = {"Authorization": f"Bearer {self.upstream.api_key}"}
        if self.request_format == "multipart":
            if request.reference_image is None:
                raise ValueError("Multipart image requests need reference image bytes")
            return {
                "headers": auth,
                "data": {
                    "model": self.model,
                    "prompt": request.prompt,
                    "response_format": "url",
                    "image_size": size,
                    **{k: str(v) for k, v in request.options.items()},
                },
                "files": {
                    "image": (request.reference_filename, request.reference_image, "image/png"),
                },
            }
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": request.prompt,
            "response_format": "url",
            "size": size,
            **request.options,
        }
        if request.reference_url:
            payload["image"] = [request.reference_url]
        return {"headers": {**auth, "Content-Type": "application/json"}, "json": payload}

    async def generate(self, request: ImageGenRequest) -> ImageGenResult:
        """Generate a single image."""
        try:
            kwargs = self._request_kwargs(request)
            response = await self.http.send(
                "POST",
                self.upstream.url(self.upstream.image_path),
                self.policy,
                **kwargs,
            )
            data = response.json()
        except httpx.HTTPStatusError as e:
            error_msg = f"HTTP {e.response.status_code}: {e.response.text[:500]}"
            logger.error("image_api_error", error=error_msg)
            return ImageGenResult(success=False, error_message=error_msg)
        except (httpx.HTTPError, TimeoutError, ValueError) as e:
            logger.error("image_generation_error", error=str(e) or type(e).__name__)
            return ImageGenResult(success=False, error_message=str(e) or type(e).__name__)

        image_url = extract_image_url(data)
        if not image_url:
            return ImageGenResult(
                success=False,
                error_message="No image URL in response",
                metadata={"raw_response": data},
            )

        logger.info("image_generated", model=self.model, image_url=image_url[:100])
        return ImageGenResult(
            success=True,
            image_url=image_url,
            metadata={"provider": self.name, "model": self.model},
        )
