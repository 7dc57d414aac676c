"""Persistence interfaces injected into pipelines and services."""

from media_engine.repositories.library import (
    InMemoryVideoLibraryRepository,
    LibraryFilters,
    LibraryVideo,
    SqlAlchemyVideoLibraryRepository,
    VideoLibraryRepository,
)
from media_engine.repositories.tasks import (
    InMemoryTaskRepository,
    SqlAlchemyTaskRepository,
    TaskRepository,
)

__all__ = [
    "InMemoryTaskRepository",
    "InMemoryVideoLibraryRepository",
    "LibraryFilters",
    "LibraryVideo",
    "SqlAlchemyTaskRepository",
    "SqlAlchemyVideoLibraryRepository",
    "TaskRepository",
    "VideoLibraryRepository",
]
