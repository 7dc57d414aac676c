"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from media_engine import __version__
from media_engine.api.deps import get_lifecycle_controller
from media_engine.api.routes import health, tasks, videos
from media_engine.config import settings
from media_engine.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__, dispatch_mode=settings.dispatch_mode)

    # Startup: verify database connection
    try:
        from media_engine.db.session import ping_database

        ping_database()
        logger.info("database_connected")
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        # Don't raise - let health checks report the issue

    yield

    # Shutdown: in-process runs are cancelled and persisted as failed
    logger.info("application_shutting_down")
    if get_lifecycle_controller.cache_info().currsize:
        await get_lifecycle_controller().shutdown()


# Create FastAPI app
app = FastAPI(
    title="Media Engine",
    description="Multi-stage AI media generation pipeline with poll-based status",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health.router)
app.include_router(tasks.router, prefix="/api/v1")
app.include_router(videos.router, prefix="/api/v1")

# Work directories and local storage are served directly
settings.work_root.mkdir(parents=True, exist_ok=True)
settings.storage_root.mkdir(parents=True, exist_ok=True)
app.mount(settings.work_public_prefix, StaticFiles(directory=settings.work_root), name="work")
app.mount("/storage", StaticFiles(directory=settings.storage_root), name="storage")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint redirect to docs."""
    return {
        "name": "Media Engine",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "media_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
