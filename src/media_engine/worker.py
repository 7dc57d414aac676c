"""Celery worker configuration."""

from celery import Celery

from media_engine.config import settings
from media_engine.logging import setup_logging

# Setup logging before anything else
setup_logging()

# Create Celery app
celery_app = Celery(
    "media_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=2400,  # 3 segments x 3 attempts x 10 minute polls can approach this
    task_soft_time_limit=2340,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Result backend
    result_expires=86400,  # 24 hours
    # Task routing
    task_routes={
        "generation.run_task": {"queue": "high"},
        "generation.merge_videos": {"queue": "default"},
        "maintenance.sync_pending_tasks": {"queue": "low"},
    },
    # Beat scheduler (for periodic tasks)
    beat_schedule={
        "sync-pending-tasks-10m": {
            "task": "maintenance.sync_pending_tasks",
            "schedule": 600.0,  # 10 minutes
            "options": {"queue": "low"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["media_engine.jobs"])
