# coursehub/tasks/beat_schedule.py
"""
Celery Beat schedule for CourseHub.

The daily automation scan runs once per UTC day at the configured
hour and minute. Purging of finished jobs runs hourly. Draining due
jobs from beat is only for deployments without a dedicated worker pool.
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

from coursehub.core.config import Settings


def get_beat_schedule(config: Settings) -> Dict[str, Dict[str, Any]]:
    schedule: Dict[str, Dict[str, Any]] = {
        "run-daily-automation": {
            "task": "automation.run_daily",
            "schedule": crontab(
                hour=config.daily_automation_hour, minute=config.daily_automation_minute
            ),
        },
        "purge-finished-automation-jobs": {
            "task": "automation.purge_finished_jobs",
            "schedule": crontab(minute=17),
        },
    }
    if not config.automation_worker_in_process:
        schedule["process-due-automation-jobs"] = {
            "task": "automation.process_due_jobs",
            "schedule": timedelta(seconds=max(config.jobs_poll_interval, 10.0)),
            "options": {"expires": 60},
        }
    return schedule
