"""Workers module - Celery task queue for the periodic sweep."""

from payflow.workers.celery_app import celery_app

__all__ = [
    "celery_app",
]
