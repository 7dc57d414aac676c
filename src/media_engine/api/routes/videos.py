"""Video utility endpoints."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from media_engine.api.deps import MergeServiceDep
from media_engine.domain.errors import MediaEngineError, TaskValidationError
from media_engine.logging import get_logger

router = APIRouter(prefix="/videos", tags=["Videos"])
logger = get_logger(__name__)


class MergeVideosRequest(BaseModel):
    """Request to merge videos in order."""

    urls: list[str] = Field(..., description="At least two http(s) video URLs")


class MergeVideosResponse(BaseModel):
    url: str
    merged_count: int


@router.post("/merge", response_model=MergeVideosResponse, summary="Merge videos")
async def merge_videos(request: MergeVideosRequest, merger: MergeServiceDep) -> MergeVideosResponse:
    """Concatenate the videos and return the merged file's URL."""
    try:
        merged = await merger.merge_videos(request.urls)
    except TaskValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except MediaEngineError as e:
        logger.error("video_merge_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to merge videos: {e}",
        ) from e

    return MergeVideosResponse(url=merged.url, merged_count=merged.merged_count)
