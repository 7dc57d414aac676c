"""Fake adapters and services shared by the tests."""

import asyncio
import contextlib
import json
from pathlib import Path
from typing import Any

from media_engine.adapters.image_gen.base import ImageGenProvider, ImageGenRequest, ImageGenResult
from media_engine.adapters.llm.base import LLMProvider, LLMResponse, ResponseSchema, VisionMessage
from media_engine.adapters.video_gen.base import VideoGenProvider, VideoGenRequest, VideoGenResult
from media_engine.adapters.voiceover.base import (
    VoiceoverProvider,
    VoiceoverRequest,
    VoiceoverResult,
)
from media_engine.domain.errors import MediaProcessingError
from media_engine.services.storage import StorageService, UploadResult


def fitness_analysis(segments: int = 2) -> dict[str, Any]:
    return {
        "identifiedObjects": ["chair", "yoga mat"],
        "targetMuscleGroup": "legs",
        "exercisePlan": {
            "totalSegments": segments,
            "segments": [
                {
                    "segmentNumber": n,
                    "prompt": f"Person performs chair squats, part {n}",
                    "narration": f"Keep your back straight, part {n}",
                    "exerciseName": "Chair squat",
                    "instructions": "Lower slowly and stand up",
                }
                for n in range(1, segments + 1)
            ],
        },
        "safetyNotes": "Make sure the chair is stable.",
    }


def verse_analysis() -> dict[str, Any]:
    return {
        "image_generation_prompt": "Golden light over the family at the table",
        "audio_script": "The Lord is my shepherd; I shall not want.",
        "verse_reference": "Psalm 23:1",
    }


class FakeLLM(LLMProvider):
    """Returns a fixed JSON reply and records every call."""

    def __init__(self, content: dict[str, Any] | str, finish_reason: str = "stop") -> None:
        self.content = content if isinstance(content, str) else json.dumps(content)
        self.finish_reason = finish_reason
        self.calls: list[tuple[list[VisionMessage], ResponseSchema | None]] = []

    @property
    def name(self) -> str:
        return "fake_llm"

    async def complete_with_vision(
        self,
        messages: list[VisionMessage],
        response_schema: ResponseSchema | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.calls.append((messages, response_schema))
        return LLMResponse(content=self.content, model="fake", finish_reason=self.finish_reason)


class FakeVideoGen(VideoGenProvider):
    """Returns one clip URL per call; optionally fails a given call or blocks."""

    def __init__(self, fail_on: int | None = None, block: bool = False) -> None:
        self.fail_on = fail_on
        self.block = block
        self.requests: list[VideoGenRequest] = []
        self.started = asyncio.Event()

    @property
    def name(self) -> str:
        return "fake_video"

    async def generate(self, request: VideoGenRequest) -> VideoGenResult:
        self.requests.append(request)
        number = len(self.requests)
        self.started.set()
        if self.block:
            await asyncio.Event().wait()
        if number == self.fail_on:
            return VideoGenResult(
                success=False,
                error_message=f"Video generation failed after 3 attempts: clip {number}",
                attempts=3,
            )
        return VideoGenResult(
            success=True,
            video_url=f"https://cdn.example.com/clip_{number}.mp4",
            job_id=f"job-{number}",
            attempts=1,
        )

    async def check_status(self, job_id: str) -> dict[str, Any]:
        return {"status": "SUCCESS"}


class FakeImageGen(ImageGenProvider):
    """Returns one image URL per call; the first ``failures`` calls fail."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.requests: list[ImageGenRequest] = []

    @property
    def name(self) -> str:
        return "fake_image"

    async def generate(self, request: ImageGenRequest) -> ImageGenResult:
        self.requests.append(request)
        number = len(self.requests)
        if number <= self.failures:
            return ImageGenResult(success=False, error_message="HTTP 503: busy")
        return ImageGenResult(success=True, image_url=f"https://img.example.com/gen_{number}.png")


class GatedImageGen(FakeImageGen):
    """Holds every call until ``parties`` calls are in flight at once.

    ``peak`` records the highest number of simultaneous calls. Calls made one
    after another never fill the gate and are released after ``timeout``.
    """

    def __init__(self, parties: int, timeout: float = 1.0) -> None:
        super().__init__()
        self.parties = parties
        self.timeout = timeout
        self.in_flight = 0
        self.peak = 0
        self._gate = asyncio.Event()

    async def generate(self, request: ImageGenRequest) -> ImageGenResult:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.in_flight >= self.parties:
            self._gate.set()
        try:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._gate.wait(), timeout=self.timeout)
            return await super().generate(request)
        finally:
            self.in_flight -= 1


class FailFastImageGen(FakeImageGen):
    """The first call fails at once; later calls hang until cancelled."""

    def __init__(self) -> None:
        super().__init__()
        self.cancelled: list[int] = []

    async def generate(self, request: ImageGenRequest) -> ImageGenResult:
        self.requests.append(request)
        number = len(self.requests)
        if number == 1:
            return ImageGenResult(success=False, error_message="HTTP 400: prompt rejected")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled.append(number)
            raise


class FakeVoiceover(VoiceoverProvider):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[VoiceoverRequest] = []

    @property
    def name(self) -> str:
        return "fake_voice"

    async def generate(self, request: VoiceoverRequest) -> VoiceoverResult:
        self.requests.append(request)
        if self.fail:
            return VoiceoverResult(success=False, error_message="TTS generation failed: 500")
        return VoiceoverResult(success=True, audio_data=b"ID3-fake-audio")


class FakeDownloader:
    """Writes the URL itself as the downloaded body."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    async def download(self, url: str, policy: Any = None, headers: Any = None) -> bytes:
        self.urls.append(url)
        return f"body:{url}".encode()

    async def download_to(self, url: str, path: Path, policy: Any = None, headers: Any = None) -> Path:
        data = await self.download(url)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path


class FakeCompositor:
    """File-level stand-in for the ffmpeg-backed compositor."""

    def __init__(self, fail_concat: bool = False, duration: float = 16.0) -> None:
        self.fail_concat = fail_concat
        self.duration = duration
        self.frames: list[Path] = []

    async def overlay_caption(self, image_bytes: bytes, text: str) -> bytes:
        return image_bytes + b"|" + text.encode()

    async def probe_duration(self, media_path: Path) -> float:
        return self.duration

    async def extract_last_frame(self, video_path: Path, output_path: Path) -> Path:
        output_path.write_bytes(b"frame-of-" + video_path.name.encode())
        self.frames.append(output_path)
        return output_path

    async def concat_segments(self, clip_paths: list[Path], output_path: Path) -> Path:
        if self.fail_concat:
            raise MediaProcessingError("ffmpeg exited with code 1: concat failed", returncode=1)
        output_path.write_bytes(b"".join(p.read_bytes() for p in clip_paths))
        return output_path

    async def images_with_audio_to_video(
        self,
        image_paths: list[Path],
        audio_path: Path,
        work_dir: Path,
    ) -> Path:
        (work_dir / "video_only.mp4").write_bytes(b"video-only")
        final = work_dir / "final_video.mp4"
        final.write_bytes(b"final")
        return final


class FakeStorage(StorageService):
    """Records uploads; filenames listed in ``fail_names`` fail."""

    def __init__(self, fail_names: set[str] | None = None, fail_all: bool = False) -> None:
        self.fail_names = fail_names or set()
        self.fail_all = fail_all
        self.uploads: dict[str, bytes] = {}

    @property
    def name(self) -> str:
        return "fake"

    async def upload(self, data: bytes, key: str, content_type: str) -> UploadResult:
        if self.fail_all or key.rsplit("/", 1)[-1] in self.fail_names:
            return UploadResult(success=False, key=key, error="bucket unavailable")
        self.uploads[key] = data
        return UploadResult(success=True, url=f"https://storage.example.com/{key}", key=key)
