"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# JSONB on PostgreSQL, plain JSON elsewhere (tests run against SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid_str() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Generation tasks
# =============================================================================


class TaskModel(Base):
    """Generation task ORM model."""

    __tablename__ = "ai_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), server_default="pending", index=True)
    options: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    progress: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    credit_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )


# =============================================================================
# Video library (matching variant)
# =============================================================================


class LibraryObjectModel(Base):
    """Equipment or household object that library videos can be matched to."""

    __tablename__ = "library_objects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), server_default="active", index=True)


class BodyPartModel(Base):
    """Body part / muscle group."""

    __tablename__ = "body_parts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class LibraryVideoModel(Base):
    """Pre-recorded exercise video."""

    __tablename__ = "library_videos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    video_url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    gender: Mapped[str] = mapped_column(String(20), server_default="unisex")
    age_group: Mapped[str] = mapped_column(String(20), server_default="all")
    access_type: Mapped[str] = mapped_column(String(20), server_default="free")
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), server_default="active", index=True)

    mappings: Mapped[list["VideoMappingModel"]] = relationship(
        "VideoMappingModel", back_populates="video", cascade="all, delete-orphan"
    )


class VideoMappingModel(Base):
    """Links a library video to a body part and optionally an object."""

    __tablename__ = "library_video_mappings"
    __table_args__ = (UniqueConstraint("video_id", "object_id", "body_part_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    video_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("library_videos.id", ondelete="CASCADE"), index=True
    )
    object_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("library_objects.id", ondelete="CASCADE"), nullable=True
    )
    body_part_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("body_parts.id", ondelete="CASCADE"), index=True
    )

    video: Mapped["LibraryVideoModel"] = relationship(
        "LibraryVideoModel", back_populates="mappings"
    )
    object: Mapped["LibraryObjectModel | None"] = relationship("LibraryObjectModel")
    body_part: Mapped["BodyPartModel"] = relationship("BodyPartModel")
