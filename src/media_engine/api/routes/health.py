"""Health check endpoints."""

import os
import shutil

from fastapi import APIRouter, status
from pydantic import BaseModel

from media_engine.config import settings
from media_engine.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, bool] | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    redis: bool
    ffmpeg: bool
    work_root: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Basic health check endpoint that verifies the API is running.",
)
async def health_check() -> HealthResponse:
    """Basic health check - is the API up?

    Returns which upstream credentials are configured.
    """
    from media_engine import __version__

    components = {
        "upstream": bool(settings.upstream_api_key),
        "streaming_tts": bool(settings.streaming_tts_app_id and settings.streaming_tts_token),
    }

    return HealthResponse(status="healthy", version=__version__, components=components)

@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Verifies the database, Redis, the ffmpeg binary and the work directory.",
)
async def readiness_check() -> ReadinessResponse:
    """Readiness check including dependencies.

    Redis only gates readiness when runs are dispatched to Celery.
    """
    database_ok = False
    try:
        from media_engine.db.session import ping_database

        ping_database()
        database_ok = True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))

    redis_ok = False
    try:
        import redis

        redis.from_url(settings.redis_url).ping()
        redis_ok = True
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))

    ffmpeg_ok = shutil.which(settings.ffmpeg_path or "ffmpeg") is not None
    if not ffmpeg_ok:
        logger.error("ffmpeg_health_check_failed", ffmpeg_path=settings.ffmpeg_path or "ffmpeg")

    work_root_ok = settings.work_root.is_dir() and os.access(settings.work_root, os.W_OK)

    needs_redis = settings.dispatch_mode == "celery"
    return ReadinessResponse(
        ready=database_ok and ffmpeg_ok and work_root_ok and (redis_ok or not needs_redis),
        database=database_ok,
        redis=redis_ok,
        ffmpeg=ffmpeg_ok,
        work_root=work_root_ok,
    )


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Simple liveness probe for Kubernetes.",
)
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe - is the process alive?"""
    return {"status": "alive"}
