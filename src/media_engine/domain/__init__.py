"""Domain models and business logic."""

from media_engine.domain.enums import (
    ImageAudioStep,
    LibraryMatchStep,
    PipelineVariant,
    SegmentKind,
    SegmentVideoStep,
    TaskStatus,
)
from media_engine.domain.models import Progress, Segment, Task, TaskAck

__all__ = [
    "ImageAudioStep",
    "LibraryMatchStep",
    "PipelineVariant",
    "Progress",
    "Segment",
    "SegmentKind",
    "SegmentVideoStep",
    "Task",
    "TaskAck",
    "TaskStatus",
]
