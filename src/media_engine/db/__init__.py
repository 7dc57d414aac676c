"""Database layer.

Models are importable without a database driver; the session module creates
the engine on import and is loaded lazily by callers.
"""

from media_engine.db.models import (
    Base,
    BodyPartModel,
    LibraryObjectModel,
    LibraryVideoModel,
    TaskModel,
    VideoMappingModel,
)

__all__ = [
    "Base",
    "BodyPartModel",
    "LibraryObjectModel",
    "LibraryVideoModel",
    "TaskModel",
    "VideoMappingModel",
]
