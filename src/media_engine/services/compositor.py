"""Media compositing: caption overlays and the ffmpeg pipeline."""

import asyncio
import shutil
from pathlib import Path

from media_engine.config import settings
from media_engine.domain.errors import MediaProcessingError
from media_engine.logging import get_logger
from media_engine.services import ffmpeg
from media_engine.services.ffmpeg import FFmpegRunner
from media_engine.services.text_overlay import render_caption

logger = get_logger(__name__)


class MediaCompositor:
    """Builds final artifacts from intermediate segments.

    Every output file is written under its final name only by ffmpeg itself or
    by an atomic copy, and is checked to exist and be non-empty before the
    path is returned.
    """

    def __init__(
        self,
        runner: FFmpegRunner | None = None,
        frame_rate: int | None = None,
        font_path: str | None = None,
    ) -> None:
        self.runner = runner or FFmpegRunner()
        self.frame_rate = frame_rate or settings.still_frame_rate
        self.font_path = font_path or settings.overlay_font_path

    async def overlay_caption(self, image_bytes: bytes, text: str) -> bytes:
        """Render caption text onto an image (PNG output)."""
        return await asyncio.to_thread(render_caption, image_bytes, text, self.font_path)

    async def probe_duration(self, media_path: Path) -> float:
        return await self.runner.probe_duration(media_path)

    async def still_to_clip(self, image_path: Path, duration: float, output_path: Path) -> Path:
        await self.runner.ffmpeg(
            ffmpeg.still_to_clip_args(image_path, duration, output_path, self.frame_rate)
        )
        return _verified(output_path)

    async def concat_segments(self, clip_paths: list[Path], output_path: Path) -> Path:
        """Stream-copy concatenate clips that share codecs.

        All clips must live in the same directory as ``output_path``; a single
        clip is copied unchanged.
        """
        if not clip_paths:
            raise MediaProcessingError("No segments to concatenate")

        if len(clip_paths) == 1:
            partial = output_path.with_name(output_path.name + ".part")
            await asyncio.to_thread(shutil.copyfile, clip_paths[0], partial)
            partial.replace(output_path)
            return _verified(output_path)

        list_path = output_path.with_name(f"{output_path.stem}_concat.txt")
        list_path.write_text(ffmpeg.concat_list_content(clip_paths), encoding="utf-8")
        try:
            await self.runner.ffmpeg(ffmpeg.concat_args(list_path, output_path))
        finally:
            list_path.unlink(missing_ok=True)
        return _verified(output_path)

    async def mux_audio(self, video_path: Path, audio_path: Path, output_path: Path) -> Path:
        await self.runner.ffmpeg(ffmpeg.mux_args(video_path, audio_path, output_path))
        return _verified(output_path)

    async def extract_last_frame(self, video_path: Path, output_path: Path) -> Path:
        await self.runner.ffmpeg(ffmpeg.last_frame_args(video_path, output_path))
        logger.info("last_frame_extracted", video=video_path.name, frame=output_path.name)
        return _verified(output_path)

    async def images_with_audio_to_video(
        self,
        image_paths: list[Path],
        audio_path: Path,
        work_dir: Path,
    ) -> Path:
        """Turn N stills plus one narration track into ``final_video.mp4``.

        Each image gets an equal slice of the audio duration; clips are
        concatenated to ``video_only.mp4`` and then muxed with the audio.
        """
        if not image_paths:
            raise MediaProcessingError("No images to merge")

        duration = await self.probe_duration(audio_path)
        per_image = duration / len(image_paths)
        logger.info(
            "image_video_merge_started",
            images=len(image_paths),
            audio_duration=duration,
            per_image=round(per_image, 3),
        )

        clips = []
        for index, image_path in enumerate(image_paths, start=1):
            clip = work_dir / f"segment_{index}.mp4"
            clips.append(await self.still_to_clip(image_path, per_image, clip))

        video_only = await self.concat_segments(clips, work_dir / "video_only.mp4")
        return await self.mux_audio(video_only, audio_path, work_dir / "final_video.mp4")


def _verified(path: Path) -> Path:
    if not path.exists() or path.stat().st_size == 0:
        raise MediaProcessingError(f"Expected output was not written: {path.name}")
    return path
