# coursehub/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for CourseHub

Overlap queries used by the conflict detector. Two lessons overlap when
``existing.start_time < end AND existing.end_time > start``; touching
intervals do not overlap. Cancelled lessons never take part.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.enums import LessonStatus
from ..core.exceptions import RepositoryException
from ..models.lesson import Lesson
from ..models.school_class import SchoolClass
from .base_repository import TenantScopedRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(TenantScopedRepository[Lesson]):
    """Repository for conflict checking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)
        self.logger = logging.getLogger(__name__)

    def _overlapping(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        exclude_lesson_id: Optional[str],
    ) -> Query:
        query = (
            self._scoped(tenant_id)
            .options(
                joinedload(Lesson.teacher),
                joinedload(Lesson.school_class).joinedload(SchoolClass.course),
            )
            .filter(
                Lesson.status != LessonStatus.CANCELLED.value,
                Lesson.start_time < end,
                Lesson.end_time > start,
            )
        )
        if exclude_lesson_id:
            query = query.filter(Lesson.id != exclude_lesson_id)
        return query

    def get_teacher_overlaps(
        self,
        tenant_id: str,
        teacher_id: str,
        start: datetime,
        end: datetime,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        """
        Get non-cancelled lessons of a teacher overlapping ``[start, end)``.

        Args:
            tenant_id: Tenant the caller belongs to
            teacher_id: The teacher to check
            start: Start of the candidate interval
            end: End of the candidate interval
            exclude_lesson_id: Lesson being edited, left out of the result

        Returns:
            Overlapping lessons ordered by start time
        """
        try:
            return (
                self._overlapping(tenant_id, start, end, exclude_lesson_id)
                .filter(Lesson.teacher_id == teacher_id)
                .order_by(Lesson.start_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting teacher overlaps: {str(e)}")
            raise RepositoryException(f"Failed to get teacher conflicts: {str(e)}") from e

    def get_room_overlaps(
        self,
        tenant_id: str,
        room: str,
        start: datetime,
        end: datetime,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        """Get non-cancelled lessons booked in ``room`` overlapping ``[start, end)``."""
        try:
            return (
                self._overlapping(tenant_id, start, end, exclude_lesson_id)
                .filter(Lesson.room == room)
                .order_by(Lesson.start_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting room overlaps: {str(e)}")
            raise RepositoryException(f"Failed to get room conflicts: {str(e)}") from e
