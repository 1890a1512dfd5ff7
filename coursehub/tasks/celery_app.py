# coursehub/tasks/celery_app.py
"""
Celery application for CourseHub.

Redis is the broker. Celery only carries the periodic triggers; the
automation jobs themselves live in the relational store and are run by
the worker pool.
"""

import logging
import os
from typing import Any, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from coursehub.core.config import settings

logger = logging.getLogger(__name__)


def create_celery_app() -> Celery:
    # CELERY_BROKER_URL wins over REDIS_URL, which wins over settings
    broker_url = os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or settings.redis_url

    app = Celery("coursehub", broker=broker_url)
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # Triggers report through the job table, not a result backend
        task_ignore_result=True,
        worker_prefetch_multiplier=1,
        task_soft_time_limit=240,
        task_time_limit=300,
        worker_hijack_root_logger=False,
        imports=("coursehub.tasks.automation_tasks",),
    )

    from coursehub.tasks.beat_schedule import get_beat_schedule

    app.conf.beat_schedule = get_beat_schedule(settings)
    return app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Logs the outcome of every automation trigger."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.error(f"Task {self.name}[{task_id}] failed: {exc}", exc_info=True)
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval: Any, task_id: str, args: Any, kwargs: Any) -> None:
        logger.info(f"Task {self.name}[{task_id}] finished: {retval}")
        super().on_success(retval, task_id, args, kwargs)


celery_app.Task = cast(Type[Task], BaseTask)
