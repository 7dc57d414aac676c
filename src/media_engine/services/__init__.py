"""Application services.

``services.lifecycle`` depends on the pipelines and is imported directly.
"""

from media_engine.services.compositor import MediaCompositor
from media_engine.services.merge import MergeResult, VideoMergeService
from media_engine.services.progress import StepProgressTracker
from media_engine.services.promote import PromoteService
from media_engine.services.status import StatusQueryService, TaskStatusEnvelope
from media_engine.services.storage import LocalStorageService, StorageService, UploadResult
from media_engine.services.sync import PendingTaskSync, SyncReport
from media_engine.services.workdir import WorkDirectory, WorkDirectoryFactory

__all__ = [
    "LocalStorageService",
    "MediaCompositor",
    "MergeResult",
    "PendingTaskSync",
    "PromoteService",
    "StatusQueryService",
    "StepProgressTracker",
    "StorageService",
    "SyncReport",
    "TaskStatusEnvelope",
    "UploadResult",
    "VideoMergeService",
    "WorkDirectory",
    "WorkDirectoryFactory",
]
