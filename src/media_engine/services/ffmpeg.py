"""Thin declarative wrapper around the ffmpeg and ffprobe binaries.

Command builders are pure functions returning argv lists; ``FFmpegRunner``
executes them as subprocesses, logs start/end/error with the exact argv and
raises ``MediaProcessingError`` on a non-zero exit. Failures are never retried.
"""

import asyncio
import contextlib
import time
from pathlib import Path

from media_engine.config import settings
from media_engine.domain.errors import MediaProcessingError
from media_engine.logging import get_logger

logger = get_logger(__name__)

FASTSTART = ["-movflags", "+faststart"]


def still_to_clip_args(
    image_path: Path,
    duration: float,
    output_path: Path,
    frame_rate: int = 25,
) -> list[str]:
    """Loop a single image for ``duration`` seconds as an H.264 clip."""
    return [
        "-y",
        "-loop",
        "1",
        "-i",
        str(image_path),
        "-t",
        f"{duration:.3f}",
        "-c:v",
        "libx264",
        "-tune",
        "stillimage",
        "-pix_fmt",
        "yuv420p",
        "-r",
        str(frame_rate),
        *FASTSTART,
        str(output_path),
    ]


def concat_list_content(clip_paths: list[Path]) -> str:
    """Concat demuxer list; paths are relative to the list file's directory."""
    lines = []
    for path in clip_paths:
        escaped = path.name.replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def concat_args(list_path: Path, output_path: Path) -> list[str]:
    """Concatenate same-codec clips with stream copy (no re-encode)."""
    return [
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(list_path),
        "-c",
        "copy",
        *FASTSTART,
        str(output_path),
    ]


def mux_args(video_path: Path, audio_path: Path, output_path: Path) -> list[str]:
    """Combine a silent video stream with an audio track, cut to the shorter."""
    return [
        "-y",
        "-i",
        str(video_path),
        "-i",
        str(audio_path),
        "-c:v",
        "copy",
        "-c:a",
        "aac",
        "-b:a",
        "192k",
        "-shortest",
        *FASTSTART,
        str(output_path),
    ]


def last_frame_args(video_path: Path, output_path: Path) -> list[str]:
    """Seek to just before end-of-file and emit exactly one JPEG frame."""
    return [
        "-y",
        "-sseof",
        "-0.1",
        "-i",
        str(video_path),
        "-frames:v",
        "1",
        "-q:v",
        "2",
        str(output_path),
    ]


def probe_duration_args(media_path: Path) -> list[str]:
    return [
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(media_path),
    ]


class FFmpegRunner:
    """Runs ffmpeg/ffprobe without blocking the event loop."""

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        ffprobe_path: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path or "ffmpeg"
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path or "ffprobe"
        self.timeout = timeout or settings.ffmpeg_timeout

    async def ffmpeg(self, args: list[str]) -> str:
        return await self._run([self.ffmpeg_path, "-hide_banner", "-loglevel", "error", *args])

    async def ffprobe(self, args: list[str]) -> str:
        return await self._run([self.ffprobe_path, *args])

    async def probe_duration(self, media_path: Path) -> float:
        """Duration of a media file in seconds."""
        output = await self.ffprobe(probe_duration_args(media_path))
        try:
            return float(output.strip())
        except ValueError as e:
            raise MediaProcessingError(
                f"Could not parse duration of {media_path.name}: {output.strip()!r}"
            ) from e

    async def _run(self, argv: list[str]) -> str:
        started = time.monotonic()
        logger.info("media_command_started", argv=argv)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            logger.error("media_command_error", argv=argv, error=str(e))
            raise MediaProcessingError(f"{argv[0]} not found", argv=argv) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError as e:
            logger.error("media_command_timeout", argv=argv, timeout=self.timeout)
            raise MediaProcessingError(
                f"{Path(argv[0]).name} timed out after {self.timeout}s", argv=argv
            ) from e
        finally:
            # Timeouts and cancellation both leave the child running
            if process.returncode is None:
                logger.warning("media_command_killed", argv=argv, pid=process.pid)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        elapsed = round(time.monotonic() - started, 3)
        stderr_text = stderr.decode(errors="replace").strip()
        if process.returncode != 0:
            logger.error(
                "media_command_error",
                argv=argv,
                returncode=process.returncode,
                elapsed=elapsed,
                stderr=stderr_text[-2000:],
            )
            raise MediaProcessingError(
                f"{Path(argv[0]).name} exited with code {process.returncode}: {stderr_text[-500:]}",
                argv=argv,
                returncode=process.returncode,
                stderr=stderr_text,
            )

        logger.info("media_command_completed", argv=argv, elapsed=elapsed)
        return stdout.decode(errors="replace")
