# coursehub/tasks/__init__.py
"""
Celery tasks package for CourseHub.

Beat drives the daily automation scan and job-history housekeeping.
Run with: celery -A coursehub.tasks worker --beat
"""

from coursehub.tasks.automation_tasks import (
    process_due_jobs,
    purge_finished_jobs,
    run_daily_automation,
)
from coursehub.tasks.celery_app import BaseTask, celery_app

__all__ = [
    "celery_app",
    "BaseTask",
    "run_daily_automation",
    "purge_finished_jobs",
    "process_due_jobs",
]
