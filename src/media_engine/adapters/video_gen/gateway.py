"""Video generation through the gateway's asynchronous job API."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from media_engine.adapters.video_gen.base import (
    VideoGenProvider,
    VideoGenRequest,
    VideoGenResult,
)
from media_engine.config import SegmentVideoConfig, settings
from media_engine.domain.errors import GenerationError
from media_engine.logging import get_logger
from media_engine.utils.http import ResilientHttpClient
from media_engine.utils.retry import RetryPolicy, retry_any_error, with_retry

logger = get_logger(__name__)

SUCCESS_STATES = {"SUCCESS", "completed", "succeeded"}
FAILURE_STATES = {"FAILURE", "failed", "error"}


class JobCreateError(GenerationError):
    """The generation job could not be created."""


class GatewayVideoProvider(VideoGenProvider):
    """Creates a video job and polls it until it is terminal.

    One generation attempt is create + poll. The poll loop has two bounds:
    a wall-clock wait per attempt and a count of consecutive poll failures.
    A failed, timed out or abandoned attempt is retried as a whole.
    """

    def __init__(
        self,
        config: SegmentVideoConfig,
        http: ResilientHttpClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.upstream = config.upstream
        self.http = http or ResilientHttpClient()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock
        self.call_policy = RetryPolicy(
            max_attempts=settings.http_max_attempts,
            base_delay=3.0,
            timeout=settings.http_timeout,
        )
        self.attempt_policy = RetryPolicy(
            max_attempts=config.max_generation_attempts,
            base_delay=config.retry_pause,
            timeout=config.max_wait,
            retry_predicate=retry_any_error,
            backoff="fixed",
            delay_overrides=((JobCreateError, config.create_retry_pause),),
        )

        if not self.upstream.api_key:
            logger.warning("Upstream API key not configured")

    @property
    def name(self) -> str:
        return f"gateway_video:{self.config.video_model}"

    @property
    def jobs_url(self) -> str:
        return self.upstream.url(self.upstream.video_path)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.upstream.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, request: VideoGenRequest) -> VideoGenResult:
        """Generate a clip, retrying whole attempts up to the configured cap."""
        payload = {
            "prompt": request.prompt,
            "model": self.config.video_model,
            "enhance_prompt": True,
            "images": request.image_urls,
            "aspect_ratio": request.aspect_ratio,
            **request.options,
        }
        attempts = 0

        async def attempt() -> tuple[str, str]:
            nonlocal attempts
            attempts += 1
            job_id = await self._create_job(payload)
            return job_id, await self._wait_for_job(job_id)

        try:
            job_id, video_url = await with_retry(
                attempt,
                self.attempt_policy,
                name="video_generation",
                sleep=self._sleep,
            )
        except Exception as e:
            error_msg = (
                f"Video generation failed after {attempts} attempts: {str(e) or type(e).__name__}"
            )
            logger.error("video_generation_failed", attempts=attempts, error=error_msg)
            return VideoGenResult(success=False, error_message=error_msg, attempts=attempts)

        logger.info(
            "video_generation_completed",
            job_id=job_id,
            attempts=attempts,
            video_url=video_url[:100],
        )
        return VideoGenResult(
            success=True,
            video_url=video_url,
            job_id=job_id,
            attempts=attempts,
            metadata={"provider": self.name, "job_id": job_id},
        )

    async def _create_job(self, payload: dict[str, Any]) -> str:
        try:
            data = await self.http.post_json(
                self.jobs_url,
                payload,
                self.call_policy,
                headers=self._headers(),
            )
        except httpx.HTTPStatusError as e:
            raise JobCreateError(
                f"Video generation failed: {e.response.status_code}, {e.response.text[:500]}"
            ) from e
        except (httpx.HTTPError, TimeoutError) as e:
            raise JobCreateError(f"Video job creation failed: {str(e) or type(e).__name__}") from e

        job_id = data.get("task_id")
        if not job_id:
            raise GenerationError("No task_id returned from video generation")

        logger.info("video_job_created", job_id=job_id)
        return job_id

    async def check_status(self, job_id: str) -> dict[str, Any]:
        return await self.http.get_json(
            f"{self.jobs_url}/{job_id}",
            self.call_policy,
            headers={"Authorization": f"Bearer {self.upstream.api_key}"},
        )

    async def _wait_for_job(self, job_id: str) -> str:
        """Poll a job until it succeeds; raise when it fails or a bound is hit."""
        started = self._clock()
        poll_failures = 0

        while self._clock() - started < self.config.max_wait:
            await self._sleep(self.config.poll_interval)

            try:
                data = await self.check_status(job_id)
            except (httpx.HTTPError, TimeoutError, ValueError) as e:
                poll_failures += 1
                logger.warning(
                    "video_poll_error",
                    job_id=job_id,
                    error=str(e) or type(e).__name__,
                    poll_failures=poll_failures,
                    max_poll_failures=self.config.max_poll_failures,
                )
                if poll_failures >= self.config.max_poll_failures:
                    raise GenerationError(f"Too many poll failures for video job {job_id}") from e
                continue

            poll_failures = 0
            state = str(data.get("status", "unknown"))
            logger.debug("video_poll_status", job_id=job_id, state=state)

            output = (data.get("data") or {}).get("output")
            if state in SUCCESS_STATES and output:
                return output
            if state in FAILURE_STATES:
                reason = data.get("fail_reason") or data.get("error") or "Unknown error"
                raise GenerationError(f"Video job {job_id} failed: {reason}")

        raise GenerationError(
            f"Video job {job_id} timed out after {self.config.max_wait:.0f} seconds"
        )
