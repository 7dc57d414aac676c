"""Domain enumerations."""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Coarse status of a generation task."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.FAILED, TaskStatus.CANCELED)


class PipelineVariant(StrEnum):
    """Pipeline variants, stored as the task's provider."""

    FITNESS_VIDEO = "fitness_video"  # Sequential frame-chained video segments
    VERSE_IMAGES = "verse_images"  # Parallel images + REST narration
    VERSE_IMAGES_STREAMING = "verse_images_streaming"  # Same, streaming TTS
    VIDEO_LIBRARY = "video_library"  # Object recognition + library lookup


class SegmentKind(StrEnum):
    """Kinds of intermediate artifacts in a task's work directory."""

    INPUT_IMAGE = "input_image"
    ORIGINAL_IMAGE = "original_image"
    IMAGE = "image"
    VIDEO = "segment"
    FRAME = "last_frame"
    AUDIO = "audio"


class SegmentVideoStep(StrEnum):
    """Steps of the sequential video-segment pipeline."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    GENERATING_VIDEO_1 = "generating_video_1"
    EXTRACTING_LAST_FRAME_1 = "extracting_last_frame_1"
    GENERATING_VIDEO_2 = "generating_video_2"
    EXTRACTING_LAST_FRAME_2 = "extracting_last_frame_2"
    GENERATING_VIDEO_3 = "generating_video_3"
    MERGING_VIDEOS = "merging_videos"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def generating(cls, segment_number: int) -> "SegmentVideoStep":
        return cls(f"generating_video_{segment_number}")

    @classmethod
    def extracting(cls, segment_number: int) -> "SegmentVideoStep":
        return cls(f"extracting_last_frame_{segment_number}")


class ImageAudioStep(StrEnum):
    """Steps of the image + narration pipeline."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    GENERATING_IMAGES = "generating_images"
    SAVING_ORIGINAL_IMAGES = "saving_original_images"
    ADDING_TEXT_OVERLAY = "adding_text_overlay"
    GENERATING_AUDIO = "generating_audio"
    MERGING_VIDEO = "merging_video"
    COMPLETED = "completed"
    FAILED = "failed"


class LibraryMatchStep(StrEnum):
    """Steps of the video library matching pipeline."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    MATCHING_VIDEOS = "matching_videos"
    COMPLETED = "completed"
    FAILED = "failed"


class Difficulty(StrEnum):
    """Difficulty levels stored on library videos."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
