"""Celery application configuration."""

from celery import Celery

from captionburn.config import get_settings

settings = get_settings()

celery_app = Celery(
    "captionburn",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["captionburn.tasks.render_task"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.task_time_limit_s,
    task_soft_time_limit=max(1, settings.task_time_limit_s - 300),
    worker_concurrency=settings.worker_concurrency,
    worker_prefetch_multiplier=1,  # Process one task at a time
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,  # Requeue if worker dies
    beat_schedule={
        "prune-render-jobs": {
            "task": "captionburn.prune_render_jobs",
            "schedule": 3600.0,
        },
    },
)
