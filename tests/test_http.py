"""Tests for the resilient HTTP client and downloader."""

from pathlib import Path

import httpx
import pytest

from media_engine.domain.errors import DownloadError
from media_engine.utils.http import ResilientDownloader, ResilientHttpClient
from media_engine.utils.retry import RetryPolicy


async def _no_sleep(_: float) -> None:
    return None


class TestResilientHttpClient:
    @pytest.mark.asyncio
    async def test_retries_transport_error_then_returns_json(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"ok": True})

        client = ResilientHttpClient(
            RetryPolicy(max_attempts=3, base_delay=0.01),
            transport=httpx.MockTransport(handler),
            sleep=_no_sleep,
        )
        data = await client.post_json("https://api.example.com/v1/things", {"a": 1})

        assert data == {"ok": True}
        assert calls == 2

    @pytest.mark.asyncio
    async def test_status_error_is_raised_without_retry(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500, text="upstream exploded")

        client = ResilientHttpClient(
            RetryPolicy(max_attempts=3, base_delay=0.01),
            transport=httpx.MockTransport(handler),
            sleep=_no_sleep,
        )
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_json("https://api.example.com/v1/things")

        assert calls == 1

    @pytest.mark.asyncio
    async def test_default_and_call_headers_are_merged(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, json={})

        client = ResilientHttpClient(
            headers={"X-Client": "media-engine"},
            transport=httpx.MockTransport(handler),
        )
        await client.get_json("https://api.example.com/", headers={"Authorization": "Bearer k"})

        assert seen["x-client"] == "media-engine"
        assert seen["authorization"] == "Bearer k"


class TestResilientDownloader:
    @pytest.mark.asyncio
    async def test_download_to_writes_complete_file(self, tmp_path: Path) -> None:
        body = b"\x00\x01" * 5000

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body)

        downloader = ResilientDownloader(transport=httpx.MockTransport(handler), sleep=_no_sleep)
        target = tmp_path / "nested" / "segment_1.mp4"
        path = await downloader.download_to("https://cdn.example.com/clip.mp4?sig=abc", target)

        assert path == target
        assert target.read_bytes() == body
        assert not (tmp_path / "nested" / "segment_1.mp4.part").exists()

    @pytest.mark.asyncio
    async def test_http_error_status_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404)

        downloader = ResilientDownloader(transport=httpx.MockTransport(handler), sleep=_no_sleep)
        with pytest.raises(DownloadError) as exc_info:
            await downloader.download("https://cdn.example.com/missing.mp4")

        assert exc_info.value.status_code == 404
        assert calls == 1

    @pytest.mark.asyncio
    async def test_dropped_connection_is_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise httpx.ReadError("connection reset by peer", request=request)
            return httpx.Response(200, content=b"video")

        downloader = ResilientDownloader(
            RetryPolicy(max_attempts=3, base_delay=5.0, timeout=30.0),
            transport=httpx.MockTransport(handler),
            sleep=_no_sleep,
        )
        assert await downloader.download("https://cdn.example.com/clip.mp4") == b"video"
        assert calls == 3
