# coursehub/repositories/lesson_repository.py
"""Lesson data access, including recurrence chain lookups."""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.enums import LessonStatus
from ..core.exceptions import RepositoryException
from ..models.lesson import Lesson
from ..models.school_class import SchoolClass
from .base_repository import TenantScopedRepository

logger = logging.getLogger(__name__)


class LessonRepository(TenantScopedRepository[Lesson]):
    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    def get_with_details(self, tenant_id: str, lesson_id: str) -> Optional[Lesson]:
        """Lesson with teacher, class and course eagerly loaded."""
        query = (
            self._scoped(tenant_id)
            .options(
                joinedload(Lesson.teacher),
                joinedload(Lesson.school_class).joinedload(SchoolClass.course),
            )
            .filter(Lesson.id == lesson_id)
        )
        return self._execute_first(query)

    def get_starting_between(
        self,
        tenant_id: str,
        window_start: datetime,
        window_end: datetime,
        status: LessonStatus = LessonStatus.SCHEDULED,
    ) -> List[Lesson]:
        """Lessons with ``window_start <= start_time < window_end`` in the given status."""
        query = (
            self._scoped(tenant_id)
            .filter(
                Lesson.status == status.value,
                Lesson.start_time >= window_start,
                Lesson.start_time < window_end,
            )
            .order_by(Lesson.start_time)
        )
        return self._execute_query(query)

    def find_chain_occurrence(self, tenant_id: str, root_id: str, start_time: datetime) -> Optional[Lesson]:
        """Lesson of the chain rooted at ``root_id`` that starts exactly at ``start_time``."""
        query = self._scoped(tenant_id).filter(
            or_(Lesson.id == root_id, Lesson.parent_lesson_id == root_id),
            Lesson.start_time == start_time,
        )
        return self._execute_first(query)

    def update_status(self, tenant_id: str, lesson_id: str, status: LessonStatus) -> Optional[Lesson]:
        try:
            return self.update(tenant_id, lesson_id, status=status.value)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update lesson status: {str(e)}") from e
