"""Tests for the upstream provider adapters and the streaming TTS codec."""

import gzip
import json
import struct
from contextlib import asynccontextmanager

import httpx
import pytest

from media_engine.adapters.image_gen.base import ImageGenRequest
from media_engine.adapters.image_gen.gateway import GatewayImageProvider, extract_image_url
from media_engine.adapters.llm.base import ResponseSchema, VisionMessage
from media_engine.adapters.llm.openai import OpenAICompatibleProvider
from media_engine.adapters.video_gen.base import VideoGenRequest
from media_engine.adapters.video_gen.gateway import GatewayVideoProvider
from media_engine.adapters.voiceover import volcano_protocol as protocol
from media_engine.adapters.voiceover.base import VoiceoverRequest
from media_engine.adapters.voiceover.speech import GatewaySpeechProvider
from media_engine.adapters.voiceover.streaming import StreamingSpeechProvider
from media_engine.config import SegmentVideoConfig
from media_engine.domain.errors import AnalysisError
from media_engine.utils.http import ResilientHttpClient

JOBS_URL = "https://gw.example.com/v2/videos/generations"


class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSocket:
    def __init__(self, frames: list[bytes]) -> None:
        self.frames = list(frames)
        self.sent: list[bytes] = []

    async def send(self, data: bytes) -> None:
        self.sent.append(data)

    async def recv(self) -> bytes:
        return self.frames.pop(0)


def fake_connector(socket: FakeSocket, calls: list):
    @asynccontextmanager
    async def connect(url, **kwargs):
        calls.append((url, kwargs))
        yield socket

    return connect


def audio_frame(payload: bytes, sequence: int) -> bytes:
    flags = protocol.MsgFlags.POSITIVE_SEQUENCE
    if sequence < 0:
        flags = protocol.MsgFlags.NEGATIVE_SEQUENCE
    return protocol.encode_server_message(
        protocol.Message(
            msg_type=protocol.MsgType.AUDIO_ONLY_SERVER,
            flags=flags,
            serialization=protocol.Serialization.RAW,
            sequence=sequence,
            payload=payload,
        )
    )


def http_client(handler) -> ResilientHttpClient:
    async def no_sleep(seconds: float) -> None:
        return None

    return ResilientHttpClient(transport=httpx.MockTransport(handler), sleep=no_sleep)


class TestVolcanoProtocol:
    def test_full_client_request_header(self) -> None:
        frame = protocol.encode_full_client_request({"text": "hi"})

        assert frame[:4] == bytes([0x11, 0x10, 0x10, 0x00])
        (size,) = struct.unpack(">I", frame[4:8])
        assert json.loads(frame[8 : 8 + size]) == {"text": "hi"}

    def test_gzip_request_decodes(self) -> None:
        frame = protocol.encode_full_client_request(
            {"text": "你好"}, compression=protocol.Compression.GZIP
        )

        message = protocol.decode_message(frame)

        assert frame[2] == 0x11
        assert message.msg_type == protocol.MsgType.FULL_CLIENT_REQUEST
        assert json.loads(message.payload) == {"text": "你好"}

    def test_negative_sequence_marks_last_frame(self) -> None:
        data = bytes([0x11, 0xB3, 0x00, 0x00]) + struct.pack(">i", -3) + struct.pack(">I", 2) + b"zz"

        message = protocol.decode_message(data)

        assert message.sequence == -3
        assert message.payload == b"zz"
        assert message.is_last

    def test_positive_sequence_is_not_last(self) -> None:
        message = protocol.decode_message(audio_frame(b"ab", 1))

        assert message.sequence == 1
        assert not message.is_last

    def test_last_flag_without_sequence(self) -> None:
        data = bytes([0x11, 0xB2, 0x00, 0x00]) + struct.pack(">I", 1) + b"z"

        message = protocol.decode_message(data)

        assert message.sequence is None
        assert message.is_last

    def test_error_frame(self) -> None:
        data = bytes([0x11, 0xF0, 0x10, 0x00]) + struct.pack(">I", 45000001) + struct.pack(">I", 3)

        message = protocol.decode_message(data + b"bad")

        assert message.msg_type == protocol.MsgType.ERROR
        assert message.error_code == 45000001
        assert message.text() == "bad"
        assert not message.is_last

    def test_gzip_server_payload(self) -> None:
        body = gzip.compress(b"audio")
        data = bytes([0x11, 0xB0, 0x01, 0x00]) + struct.pack(">I", len(body)) + body

        assert protocol.decode_message(data).payload == b"audio"

    @pytest.mark.parametrize(
        "data",
        [
            b"\x11\xb0",
            bytes([0x11, 0xB1, 0x00, 0x00]) + b"\x00\x00",
            bytes([0x11, 0xB0, 0x00, 0x00]) + struct.pack(">I", 10) + b"short",
            bytes([0x11, 0x70, 0x00, 0x00]) + struct.pack(">I", 0),
        ],
    )
    def test_malformed_frames(self, data: bytes) -> None:
        with pytest.raises(protocol.ProtocolError):
            protocol.decode_message(data)


class TestStreamingSpeechProvider:
    @pytest.mark.asyncio
    async def test_collects_audio_until_last_frame(self) -> None:
        front_end = protocol.encode_server_message(
            protocol.Message(msg_type=protocol.MsgType.FRONT_END_RESULT_SERVER, payload=b"{}")
        )
        socket = FakeSocket([front_end, audio_frame(b"ab", 1), audio_frame(b"cd", -2)])
        calls: list = []
        provider = StreamingSpeechProvider(
            app_id="app",
            token="secret",
            url="wss://tts.example.com/api/v1/tts/ws_binary",
            cluster="volcano_tts",
            connector=fake_connector(socket, calls),
        )

        result = await provider.generate(VoiceoverRequest(text="Peace be with you", voice_gender="male"))

        assert result.success
        assert result.audio_data == b"abcd"
        assert result.metadata["voice"] == StreamingSpeechProvider.VOICES["male"]
        url, kwargs = calls[0]
        assert url == "wss://tts.example.com/api/v1/tts/ws_binary"
        assert kwargs["additional_headers"] == {"Authorization": "Bearer;secret"}

        request = json.loads(protocol.decode_message(socket.sent[0]).payload)
        assert request["app"] == {"appid": "app", "token": "secret", "cluster": "volcano_tts"}
        assert request["request"]["text"] == "Peace be with you"
        assert request["audio"]["voice_type"] == StreamingSpeechProvider.VOICES["male"]

    @pytest.mark.asyncio
    async def test_error_frame_fails_request(self) -> None:
        error = protocol.encode_server_message(
            protocol.Message(
                msg_type=protocol.MsgType.ERROR,
                error_code=3001,
                payload=b"quota exceeded",
            )
        )
        provider = StreamingSpeechProvider(
            app_id="app",
            token="secret",
            connector=fake_connector(FakeSocket([error]), []),
        )

        result = await provider.generate(VoiceoverRequest(text="hello"))

        assert not result.success
        assert "TTS error 3001: quota exceeded" in result.error_message

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        calls: list = []
        provider = StreamingSpeechProvider(
            app_id="", token="", connector=fake_connector(FakeSocket([]), calls)
        )

        result = await provider.generate(VoiceoverRequest(text="hello"))

        assert not result.success
        assert result.error_message == "Streaming TTS credentials not configured"
        assert calls == []


class TestGatewayVideoProvider:
    def _provider(self, handler, upstream, clock: FakeClock, **config) -> GatewayVideoProvider:
        return GatewayVideoProvider(
            SegmentVideoConfig(upstream=upstream, **config),
            http=http_client(handler),
            sleep=clock.sleep,
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_job_is_polled_until_success(self, upstream) -> None:
        polls = iter(
            [
                {"status": "processing"},
                {"status": "SUCCESS", "data": {"output": "https://cdn.example.com/v.mp4"}},
            ]
        )
        created: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                created.append(json.loads(request.content))
                return httpx.Response(200, json={"task_id": "job-1"})
            assert request.url.path == "/v2/videos/generations/job-1"
            return httpx.Response(200, json=next(polls))

        clock = FakeClock()
        provider = self._provider(handler, upstream, clock)

        result = await provider.generate(
            VideoGenRequest(prompt="squats", image_urls=["https://img.example.com/a.jpg"])
        )

        assert result.success
        assert result.video_url == "https://cdn.example.com/v.mp4"
        assert result.job_id == "job-1"
        assert result.attempts == 1
        assert clock.sleeps == [20.0, 20.0]
        assert created[0]["images"] == ["https://img.example.com/a.jpg"]
        assert created[0]["aspect_ratio"] == "9:16"
        assert created[0]["enhance_prompt"] is True

    @pytest.mark.asyncio
    async def test_failed_job_is_retried_as_a_whole(self, upstream) -> None:
        job_ids = iter(["job-1", "job-2"])

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json={"task_id": next(job_ids)})
            if request.url.path.endswith("job-1"):
                return httpx.Response(200, json={"status": "FAILURE", "fail_reason": "blocked"})
            return httpx.Response(
                200, json={"status": "SUCCESS", "data": {"output": "https://cdn.example.com/2.mp4"}}
            )

        clock = FakeClock()
        result = await self._provider(handler, upstream, clock).generate(VideoGenRequest(prompt="p"))

        assert result.success
        assert result.job_id == "job-2"
        assert result.attempts == 2
        assert clock.sleeps == [20.0, 5.0, 20.0]

    @pytest.mark.asyncio
    async def test_wait_is_bounded(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json={"task_id": "job-1"})
            return httpx.Response(200, json={"status": "processing"})

        clock = FakeClock()
        provider = self._provider(
            handler, upstream, clock, max_wait=60.0, max_generation_attempts=1
        )

        result = await provider.generate(VideoGenRequest(prompt="p"))

        assert not result.success
        assert result.error_message == (
            "Video generation failed after 1 attempts: Video job job-1 timed out after 60 seconds"
        )
        assert clock.sleeps == [20.0, 20.0, 20.0]

    @pytest.mark.asyncio
    async def test_create_failure_uses_short_pause(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="upstream exploded")

        clock = FakeClock()
        result = await self._provider(handler, upstream, clock).generate(VideoGenRequest(prompt="p"))

        assert not result.success
        assert result.attempts == 3
        assert clock.sleeps == [2.0, 2.0]
        assert result.error_message.startswith("Video generation failed after 3 attempts:")
        assert "500" in result.error_message

    @pytest.mark.asyncio
    async def test_consecutive_poll_failures_abandon_the_job(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json={"task_id": "job-1"})
            return httpx.Response(503, text="busy")

        clock = FakeClock()
        provider = self._provider(
            handler, upstream, clock, max_poll_failures=2, max_generation_attempts=1
        )

        result = await provider.generate(VideoGenRequest(prompt="p"))

        assert not result.success
        assert "Too many poll failures for video job job-1" in result.error_message
        assert clock.sleeps == [20.0, 20.0]


class TestExtractImageUrl:
    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            ({"data": [{"url": "https://a/1.png"}]}, "https://a/1.png"),
            ({"url": "https://a/2.png"}, "https://a/2.png"),
            (
                {"choices": [{"message": {"content": "Here ![img](https://a/3.png) done"}}]},
                "https://a/3.png",
            ),
            ({"choices": [{"message": {"content": "https://a/4.png"}}]}, "https://a/4.png"),
            ({"data": []}, None),
            ({"choices": [{"message": {"content": "sorry"}}]}, None),
        ],
    )
    def test_locations(self, data: dict, expected: str | None) -> None:
        assert extract_image_url(data) == expected


class TestGatewayImageProvider:
    @pytest.mark.asyncio
    async def test_multipart_request(self, upstream) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            request.read()
            seen.append(request)
            return httpx.Response(200, json={"data": [{"url": "https://img.example.com/out.png"}]})

        provider = GatewayImageProvider(upstream, "nano-banana", http=http_client(handler))

        result = await provider.generate(
            ImageGenRequest(prompt="sunrise", reference_image=b"PNGDATA")
        )

        assert result.success
        assert result.image_url == "https://img.example.com/out.png"
        request = seen[0]
        assert request.url.path == "/v1/images/edits"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert request.headers["authorization"] == "Bearer test-key"
        assert b"PNGDATA" in request.content
        assert b"sunrise" in request.content

    @pytest.mark.asyncio
    async def test_json_request(self, upstream) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"url": "https://img.example.com/out.png"})

        provider = GatewayImageProvider(
            upstream, "nano-banana", request_format="json", size="2K", http=http_client(handler)
        )

        result = await provider.generate(
            ImageGenRequest(prompt="sunrise", reference_url="https://img.example.com/ref.png")
        )

        assert result.success
        assert bodies[0]["image"] == ["https://img.example.com/ref.png"]
        assert bodies[0]["size"] == "2K"

    @pytest.mark.asyncio
    async def test_status_error_is_reported(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="bad prompt")

        provider = GatewayImageProvider(upstream, "m", request_format="json", http=http_client(handler))

        result = await provider.generate(ImageGenRequest(prompt="x"))

        assert not result.success
        assert result.error_message == "HTTP 400: bad prompt"

    @pytest.mark.asyncio
    async def test_missing_url_is_reported(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": []})

        provider = GatewayImageProvider(upstream, "m", request_format="json", http=http_client(handler))

        result = await provider.generate(ImageGenRequest(prompt="x"))

        assert not result.success
        assert result.error_message == "No image URL in response"


class TestOpenAICompatibleProvider:
    @pytest.mark.asyncio
    async def test_vision_payload_and_response(self, upstream) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "model": "vision-1",
                    "choices": [{"message": {"content": "{}"}, "finish_reason": "stop"}],
                    "usage": {"prompt_tokens": 10, "completion_tokens": 2, "total_tokens": 12},
                },
            )

        provider = OpenAICompatibleProvider(upstream, "vision-1", http=http_client(handler))
        schema = ResponseSchema(name="analysis", schema={"type": "object"})

        response = await provider.complete_with_vision(
            [
                VisionMessage(role="system", text="You are a coach"),
                VisionMessage(role="user", text="Look", image_urls=["https://img.example.com/a.jpg"]),
            ],
            response_schema=schema,
        )

        assert response.content == "{}"
        assert response.finish_reason == "stop"
        assert response.usage["total_tokens"] == 12
        body = bodies[0]
        assert body["messages"][0] == {"role": "system", "content": "You are a coach"}
        assert body["messages"][1]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": "https://img.example.com/a.jpg"},
        }
        assert body["response_format"]["json_schema"]["strict"] is True

    @pytest.mark.asyncio
    async def test_no_choices_is_an_analysis_error(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        provider = OpenAICompatibleProvider(upstream, "vision-1", http=http_client(handler))

        with pytest.raises(AnalysisError, match="No choices returned"):
            await provider.complete_with_vision([VisionMessage(role="user", text="hi")])


class TestGatewaySpeechProvider:
    @pytest.mark.asyncio
    async def test_gender_selects_voice(self, upstream) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=b"ID3audio")

        provider = GatewaySpeechProvider(upstream, "tts-1", http=http_client(handler))

        male = await provider.generate(VoiceoverRequest(text="Amen", voice_gender="male"))
        default = await provider.generate(VoiceoverRequest(text="Amen"))

        assert male.success
        assert male.audio_data == b"ID3audio"
        assert [b["voice"] for b in bodies] == ["onyx", "shimmer"]
        assert default.metadata["voice"] == "shimmer"

    @pytest.mark.asyncio
    async def test_status_error_is_reported(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="unauthorized")

        provider = GatewaySpeechProvider(upstream, "tts-1", http=http_client(handler))

        result = await provider.generate(VoiceoverRequest(text="Amen"))

        assert not result.success
        assert result.error_message == "TTS generation failed: 401, unauthorized"

    @pytest.mark.asyncio
    async def test_empty_audio_is_a_failure(self, upstream) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"")

        provider = GatewaySpeechProvider(upstream, "tts-1", http=http_client(handler))

        result = await provider.generate(VoiceoverRequest(text="Amen"))

        assert result.error_message == "Empty audio response"
