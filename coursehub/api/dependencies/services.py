# coursehub/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets services bound to its own database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.automation_service import AutomationService
from ...services.conflict_checker import ConflictChecker
from ...services.lesson_service import LessonService


def get_conflict_checker(db: Session = Depends(get_db)) -> ConflictChecker:
    return ConflictChecker(db)


def get_lesson_service(db: Session = Depends(get_db)) -> LessonService:
    return LessonService(db)


def get_automation_service(db: Session = Depends(get_db)) -> AutomationService:
    return AutomationService(db)
