"""Video library lookups used by the library matching pipeline."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from media_engine.db.models import (
    BodyPartModel,
    LibraryObjectModel,
    LibraryVideoModel,
    VideoMappingModel,
)


@dataclass(frozen=True)
class LibraryFilters:
    """Audience filters applied to every library query."""

    difficulty: str | None = None
    gender: str = "unisex"
    age_group: str = "all"
    access_type: str = "free"


@dataclass
class LibraryVideo:
    id: str
    title: str
    video_url: str
    thumbnail_url: str | None = None
    duration: float | None = None
    difficulty: str | None = None
    instructions: str | None = None
    gender: str = "unisex"
    age_group: str = "all"
    access_type: str = "free"
    # name of the object and body parts this video is mapped to
    object_names: set[str] = field(default_factory=set)
    body_parts: set[str] = field(default_factory=set)

    def to_result(self, matched_object: str | None, matched_bp_count: int = 0) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "video_url": self.video_url,
            "thumbnail_url": self.thumbnail_url,
            "duration": self.duration,
            "difficulty": self.difficulty,
            "instructions": self.instructions,
            "matched_object": matched_object,
            "matched_bp_count": matched_bp_count,
        }


@dataclass
class LibraryMatch:
    video: LibraryVideo
    object_name: str
    matched_bp_count: int


class VideoLibraryRepository(ABC):
    @abstractmethod
    async def list_object_names(self) -> list[str]:
        """Names of all active objects."""
        ...

    @abstractmethod
    async def find_by_object_and_body_parts(
        self,
        object_name: str,
        body_parts: list[str],
        filters: LibraryFilters,
        limit: int,
    ) -> list[LibraryMatch]:
        """Videos mapped to the object, ranked by how many body parts they cover."""
        ...

    @abstractmethod
    async def find_by_body_part(
        self,
        body_part: str,
        filters: LibraryFilters,
        limit: int,
    ) -> list[LibraryVideo]:
        ...


def _passes(video: LibraryVideo, filters: LibraryFilters) -> bool:
    if filters.difficulty and video.difficulty != filters.difficulty:
        return False
    if filters.gender != "unisex" and video.gender not in (filters.gender, "unisex"):
        return False
    if filters.age_group != "all" and video.age_group not in (filters.age_group, "all"):
        return False
    return video.access_type == filters.access_type


class InMemoryVideoLibraryRepository(VideoLibraryRepository):
    def __init__(self, objects: list[str] | None = None, videos: list[LibraryVideo] | None = None):
        self.objects = list(objects or [])
        self.videos = list(videos or [])

    async def list_object_names(self) -> list[str]:
        return list(self.objects)

    async def find_by_object_and_body_parts(
        self,
        object_name: str,
        body_parts: list[str],
        filters: LibraryFilters,
        limit: int,
    ) -> list[LibraryMatch]:
        wanted = set(body_parts)
        matches = [
            LibraryMatch(video=v, object_name=object_name, matched_bp_count=len(v.body_parts & wanted))
            for v in self.videos
            if object_name in v.object_names and v.body_parts & wanted and _passes(v, filters)
        ]
        matches.sort(key=lambda m: m.matched_bp_count, reverse=True)
        return matches[:limit]

    async def find_by_body_part(
        self,
        body_part: str,
        filters: LibraryFilters,
        limit: int,
    ) -> list[LibraryVideo]:
        return [v for v in self.videos if body_part in v.body_parts and _passes(v, filters)][:limit]


class SqlAlchemyVideoLibraryRepository(VideoLibraryRepository):
    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from media_engine.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def list_object_names(self) -> list[str]:
        def _list() -> list[str]:
            with self._session_factory() as session:
                return list(
                    session.execute(
                        select(LibraryObjectModel.name)
                        .where(LibraryObjectModel.status == "active")
                        .order_by(LibraryObjectModel.name)
                    ).scalars()
                )

        return await asyncio.to_thread(_list)

    async def find_by_object_and_body_parts(
        self,
        object_name: str,
        body_parts: list[str],
        filters: LibraryFilters,
        limit: int,
    ) -> list[LibraryMatch]:
        def _find() -> list[LibraryMatch]:
            with self._session_factory() as session:
                bp_count = func.count(func.distinct(BodyPartModel.id)).label("bp_count")
                stmt = (
                    select(LibraryVideoModel, bp_count)
                    .join(VideoMappingModel, VideoMappingModel.video_id == LibraryVideoModel.id)
                    .join(LibraryObjectModel, VideoMappingModel.object_id == LibraryObjectModel.id)
                    .join(BodyPartModel, VideoMappingModel.body_part_id == BodyPartModel.id)
                    .where(LibraryObjectModel.name == object_name)
                    .where(BodyPartModel.name.in_(body_parts))
                    .group_by(LibraryVideoModel.id)
                    .order_by(bp_count.desc())
                )
                stmt = _apply_filters(stmt, filters)
                rows = session.execute(stmt.limit(limit)).all()
                return [
                    LibraryMatch(
                        video=_to_video(row[0]),
                        object_name=object_name,
                        matched_bp_count=int(row[1]),
                    )
                    for row in rows
                ]

        return await asyncio.to_thread(_find)

    async def find_by_body_part(
        self,
        body_part: str,
        filters: LibraryFilters,
        limit: int,
    ) -> list[LibraryVideo]:
        def _find() -> list[LibraryVideo]:
            with self._session_factory() as session:
                stmt = (
                    select(LibraryVideoModel)
                    .join(VideoMappingModel, VideoMappingModel.video_id == LibraryVideoModel.id)
                    .join(BodyPartModel, VideoMappingModel.body_part_id == BodyPartModel.id)
                    .where(BodyPartModel.name == body_part)
                    .distinct()
                )
                stmt = _apply_filters(stmt, filters)
                return [_to_video(v) for v in session.execute(stmt.limit(limit)).scalars()]

        return await asyncio.to_thread(_find)


def _apply_filters(stmt: Any, filters: LibraryFilters) -> Any:
    stmt = stmt.where(LibraryVideoModel.status == "active")
    stmt = stmt.where(LibraryVideoModel.access_type == filters.access_type)
    if filters.difficulty:
        stmt = stmt.where(LibraryVideoModel.difficulty == filters.difficulty)
    if filters.gender != "unisex":
        stmt = stmt.where(LibraryVideoModel.gender.in_([filters.gender, "unisex"]))
    if filters.age_group != "all":
        stmt = stmt.where(LibraryVideoModel.age_group.in_([filters.age_group, "all"]))
    return stmt


def _to_video(row: LibraryVideoModel) -> LibraryVideo:
    return LibraryVideo(
        id=row.id,
        title=row.title,
        video_url=row.video_url,
        thumbnail_url=row.thumbnail_url,
        duration=row.duration,
        difficulty=row.difficulty,
        instructions=row.instructions,
        gender=row.gender,
        age_group=row.age_group,
        access_type=row.access_type,
    )
