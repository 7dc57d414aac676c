"""Outbound HTTP with per-attempt deadlines and retry.

``ResilientHttpClient`` covers API calls; ``ResilientDownloader`` covers large
binary downloads, where the deadline must span the whole body read and not
only connection setup.
"""

import asyncio
import os
from pathlib import Path
from typing import Any

import httpx

from media_engine.domain.errors import DownloadError
from media_engine.logging import get_logger
from media_engine.utils.retry import (
    DEFAULT_DOWNLOAD_POLICY,
    DEFAULT_HTTP_POLICY,
    RetryPolicy,
    with_retry,
)

logger = get_logger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _short_url(url: str) -> str:
    return url.split("?", 1)[0][:120]


class ResilientHttpClient:
    """HTTP client whose calls are retried on transient network errors.

    A fresh ``httpx.AsyncClient`` is opened per attempt so a timed-out attempt
    releases its connection before the next one starts.
    """

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_HTTP_POLICY,
        *,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Any = None,
    ) -> None:
        self.policy = policy
        self.headers = headers or {}
        self._transport = transport
        self._sleep = sleep

    async def send(
        self,
        method: str,
        url: str,
        policy: RetryPolicy | None = None,
        *,
        raise_for_status: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Args:
            method: HTTP method.
            url: Absolute URL.
            policy: Overrides the client's default policy for this call.
            raise_for_status: Raise ``httpx.HTTPStatusError`` on 4xx/5xx.
                Status errors are fatal and never retried.
            **kwargs: Passed to ``httpx.AsyncClient.request``.

        Returns:
            The response of the first successful attempt.
        """
        policy = policy or self.policy
        headers = {**self.headers, **(kwargs.pop("headers", None) or {})}

        async def attempt() -> httpx.Response:
            async with asyncio.timeout(policy.timeout):
                async with httpx.AsyncClient(
                    transport=self._transport,
                    timeout=httpx.Timeout(policy.timeout),
                    follow_redirects=True,
                ) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
                    await response.aread()
            if raise_for_status:
                response.raise_for_status()
            return response

        return await with_retry(
            attempt,
            policy,
            name="http_request",
            sleep=self._sleep,
            method=method,
            url=_short_url(url),
        )

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        policy: RetryPolicy | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        response = await self.send("POST", url, policy, json=payload, **kwargs)
        return response.json()

    async def get_json(
        self,
        url: str,
        policy: RetryPolicy | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        response = await self.send("GET", url, policy, **kwargs)
        return response.json()


class ResilientDownloader:
    """Downloads binary payloads (video and image files) with retry."""

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_DOWNLOAD_POLICY,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Any = None,
    ) -> None:
        self.policy = policy
        self._transport = transport
        self._sleep = sleep

    async def download(
        self,
        url: str,
        policy: RetryPolicy | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        """Download ``url`` fully into memory.

        Raises:
            DownloadError: On a non-success status (not retried).
        """
        policy = policy or self.policy

        async def attempt() -> bytes:
            chunks: list[bytes] = []
            async with asyncio.timeout(policy.timeout):
                async with httpx.AsyncClient(
                    transport=self._transport,
                    timeout=httpx.Timeout(policy.timeout),
                    follow_redirects=True,
                ) as client:
                    async with client.stream("GET", url, headers=headers) as response:
                        if not response.is_success:
                            raise DownloadError(
                                f"HTTP {response.status_code}",
                                status_code=response.status_code,
                            )
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            chunks.append(chunk)
            return b"".join(chunks)

        data = await with_retry(
            attempt,
            policy,
            name="download",
            sleep=self._sleep,
            url=_short_url(url),
        )
        logger.info("download_completed", url=_short_url(url), size=len(data))
        return data

    async def download_to(
        self,
        url: str,
        path: Path,
        policy: RetryPolicy | None = None,
        headers: dict[str, str] | None = None,
    ) -> Path:
        """Download ``url`` to ``path``; the file appears only once complete."""
        data = await self.download(url, policy, headers)
        write_atomic(path, data)
        return path


def write_atomic(path: Path, data: bytes) -> None:
    """Write bytes through a temporary sibling and rename into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".part")
    partial.write_bytes(data)
    os.replace(partial, path)
