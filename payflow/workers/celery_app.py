"""Payflow Sweeper - Celery configuration.

Uses Celery with Redis as message broker for the periodic sweep.

Usage:
    # Start a worker
    celery -A payflow.workers.celery_app worker -l info -c 1

    # Start beat scheduler
    celery -A payflow.workers.celery_app beat -l info
"""

from celery import Celery

from payflow.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "payflow_workers",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "payflow.workers.tasks.sweeper",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "payflow.workers.tasks.*": {"queue": "sweeper"},
    },
    # Task result expiration
    result_expires=3600,  # 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time per worker
    task_acks_late=False,  # Never redeliver a sweep
    # Beat schedule (periodic tasks)
    beat_schedule={
        "sweep-funds": {
            "task": "payflow.workers.tasks.sweeper.sweep_funds",
            "schedule": settings.sweep_interval_seconds,
        },
    },
)
