"""Step plans: the ordered steps of each pipeline variant and their percent bands."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from media_engine.domain.enums import ImageAudioStep, LibraryMatchStep, SegmentVideoStep


@dataclass(frozen=True)
class StepPlan:
    """Percent lookup table for one pipeline variant."""

    name: str
    percents: Mapping[StrEnum, int]
    terminal: StrEnum
    failed: StrEnum

    def percent_for(self, step: StrEnum) -> int:
        if step not in self.percents:
            raise KeyError(f"Step {step!s} is not part of the {self.name} plan")
        return self.percents[step]

    def is_terminal(self, step: StrEnum | str) -> bool:
        return str(step) == str(self.terminal)


SEGMENT_VIDEO_PLAN = StepPlan(
    name="segment_video",
    percents={
        SegmentVideoStep.PENDING: 0,
        SegmentVideoStep.ANALYZING: 5,
        # Each segment owns a 25 point band from 10; generation at +12, extraction at +32
        SegmentVideoStep.GENERATING_VIDEO_1: 22,
        SegmentVideoStep.EXTRACTING_LAST_FRAME_1: 42,
        SegmentVideoStep.GENERATING_VIDEO_2: 47,
        SegmentVideoStep.EXTRACTING_LAST_FRAME_2: 67,
        SegmentVideoStep.GENERATING_VIDEO_3: 72,
        SegmentVideoStep.MERGING_VIDEOS: 85,
        SegmentVideoStep.COMPLETED: 100,
    },
    terminal=SegmentVideoStep.COMPLETED,
    failed=SegmentVideoStep.FAILED,
)

IMAGE_AUDIO_PLAN = StepPlan(
    name="image_audio",
    percents={
        ImageAudioStep.PENDING: 0,
        ImageAudioStep.ANALYZING: 5,
        ImageAudioStep.GENERATING_IMAGES: 15,
        ImageAudioStep.SAVING_ORIGINAL_IMAGES: 35,
        ImageAudioStep.ADDING_TEXT_OVERLAY: 50,
        ImageAudioStep.GENERATING_AUDIO: 60,
        ImageAudioStep.MERGING_VIDEO: 75,
        ImageAudioStep.COMPLETED: 100,
    },
    terminal=ImageAudioStep.COMPLETED,
    failed=ImageAudioStep.FAILED,
)

LIBRARY_MATCH_PLAN = StepPlan(
    name="library_match",
    percents={
        LibraryMatchStep.PENDING: 0,
        LibraryMatchStep.ANALYZING: 10,
        LibraryMatchStep.MATCHING_VIDEOS: 60,
        LibraryMatchStep.COMPLETED: 100,
    },
    terminal=LibraryMatchStep.COMPLETED,
    failed=LibraryMatchStep.FAILED,
)
