# coursehub/services/__init__.py
"""
Service layer for CourseHub.

Services own transactions and business rules; repositories only query
and flush.
"""

from .automation_queue import AutomationQueue, EnqueueResult
from .automation_service import AutomationService, DailyRunSummary, ScanSummary
from .automation_worker import AutomationWorkerPool
from .base import BaseService
from .conflict_checker import Conflict, ConflictChecker
from .lesson_service import LessonService
from .recurrence import RecurrenceExpander, RecurrenceRule, next_occurrence

__all__ = [
    "AutomationQueue",
    "AutomationService",
    "AutomationWorkerPool",
    "BaseService",
    "Conflict",
    "ConflictChecker",
    "DailyRunSummary",
    "EnqueueResult",
    "LessonService",
    "RecurrenceExpander",
    "RecurrenceRule",
    "ScanSummary",
    "next_occurrence",
]
