"""Payflow Sweeper - Celery tasks module.

Tasks organized by functionality:
- sweeper: Fund sweeping tasks
"""

from payflow.workers.tasks.sweeper import sweep_funds

__all__ = [
    # Sweeper
    "sweep_funds",
]
