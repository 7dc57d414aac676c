"""API route modules."""

from media_engine.api.routes import health, tasks, videos

__all__ = ["health", "tasks", "videos"]
