# coursehub/tasks/automation_tasks.py
"""Periodic automation triggers executed by Celery workers."""

from dataclasses import asdict
import logging
from typing import Any, Callable, Dict, TypeVar, cast

from celery import shared_task

from coursehub.database import SessionLocal, get_db_session
from coursehub.services.automation_service import AutomationService
from coursehub.services.automation_worker import AutomationWorkerPool

logger = logging.getLogger(__name__)

_TaskFunc = TypeVar("_TaskFunc", bound=Callable[..., Any])


def _typed_shared_task(*args: Any, **kwargs: Any) -> Callable[[_TaskFunc], _TaskFunc]:
    """Typed wrapper for Celery's shared_task decorator."""
    return cast(Callable[[_TaskFunc], _TaskFunc], shared_task(*args, **kwargs))


@_typed_shared_task(name="automation.run_daily")
def run_daily_automation() -> Dict[str, Any]:
    """Scan every tenant for today's reminders and payment windows."""
    with get_db_session() as db:
        summary = AutomationService(db).run_daily()
    return asdict(summary)


@_typed_shared_task(name="automation.purge_finished_jobs")
def purge_finished_jobs() -> int:
    with get_db_session() as db:
        return AutomationService(db).purge_finished_jobs()


@_typed_shared_task(name="automation.process_due_jobs")
def process_due_jobs() -> int:
    """Run one batch of due jobs when no long-lived worker pool is deployed."""
    processed = AutomationWorkerPool(SessionLocal).run_once()
    if processed:
        logger.info(f"Processed {processed} automation jobs")
    return processed
