"""Add video library tables for the library matching pipeline.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

Adds:
- library_objects: equipment and household objects videos are matched to
- body_parts: muscle groups
- library_videos: curated exercise videos with audience filters
- library_video_mappings: video -> (object, body part) links

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "library_objects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
    )
    op.create_index("ix_library_objects_status", "library_objects", ["status"])

    op.create_table(
        "body_parts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
    )

    op.create_table(
        "library_videos",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("video_url", sa.Text, nullable=False),
        sa.Column("thumbnail_url", sa.Text, nullable=True),
        sa.Column("duration", sa.Float, nullable=True),
        sa.Column("difficulty", sa.String(20), nullable=True),  # beginner, intermediate, advanced
        sa.Column("gender", sa.String(20), server_default="unisex", nullable=False),
        sa.Column("age_group", sa.String(20), server_default="all", nullable=False),
        sa.Column("access_type", sa.String(20), server_default="free", nullable=False),
        sa.Column("instructions", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
    )
    op.create_index("ix_library_videos_difficulty", "library_videos", ["difficulty"])
    op.create_index("ix_library_videos_status", "library_videos", ["status"])

    op.create_table(
        "library_video_mappings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "video_id",
            sa.String(36),
            sa.ForeignKey("library_videos.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "object_id",
            sa.String(36),
            sa.ForeignKey("library_objects.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "body_part_id",
            sa.String(36),
            sa.ForeignKey("body_parts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("video_id", "object_id", "body_part_id"),
    )
    op.create_index(
        "ix_library_video_mappings_video_id", "library_video_mappings", ["video_id"]
    )
    op.create_index(
        "ix_library_video_mappings_body_part_id", "library_video_mappings", ["body_part_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_library_video_mappings_body_part_id", table_name="library_video_mappings")
    op.drop_index("ix_library_video_mappings_video_id", table_name="library_video_mappings")
    op.drop_table("library_video_mappings")
    op.drop_index("ix_library_videos_status", table_name="library_videos")
    op.drop_index("ix_library_videos_difficulty", table_name="library_videos")
    op.drop_table("library_videos")
    op.drop_table("body_parts")
    op.drop_index("ix_library_objects_status", table_name="library_objects")
    op.drop_table("library_objects")
