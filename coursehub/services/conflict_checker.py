# coursehub/services/conflict_checker.py
"""
Conflict Checker Service for CourseHub

Detects whether a proposed lesson slot collides with an existing booking
for the same teacher or the same room. Detection is advisory: it reports
collisions and leaves the decision to the caller.

Intervals are half-open, so a lesson ending at 11:00 never collides with
one starting at 11:00. Cancelled lessons take no part.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import ConflictType
from ..core.exceptions import ValidationException
from ..core.timezone_utils import ensure_utc
from ..models.lesson import Lesson
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conflict:
    """Projection of a colliding lesson. Never persisted."""

    id: str
    title: str
    start_time: datetime
    end_time: datetime
    room: Optional[str]
    teacher_name: str
    class_name: str
    conflict_type: ConflictType

    @classmethod
    def from_lesson(cls, lesson: Lesson, conflict_type: ConflictType) -> "Conflict":
        return cls(
            id=lesson.id,
            title=lesson.title,
            start_time=ensure_utc(lesson.start_time),
            end_time=ensure_utc(lesson.end_time),
            room=lesson.room,
            teacher_name=lesson.teacher.full_name if lesson.teacher else "",
            class_name=lesson.school_class.display_name if lesson.school_class else "",
            conflict_type=conflict_type,
        )


def validate_interval(start: datetime, end: datetime) -> None:
    """Raise ValidationException unless ``start < end`` and both carry a timezone."""
    if start.tzinfo is None or end.tzinfo is None:
        raise ValidationException(
            "Lesson times must include a timezone offset",
            code="NAIVE_DATETIME",
        )
    if start >= end:
        raise ValidationException(
            "Lesson start time must be before its end time",
            code="INVALID_TIME_RANGE",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )


class ConflictChecker(BaseService):
    """
    Service for checking lesson conflicts.

    Runs up to two scoped queries (teacher, room) and merges them into one
    list keyed by lesson id. A lesson matched by both is tagged ``both``.
    """

    def __init__(self, db: Session, repository: Optional[ConflictCheckerRepository] = None):
        """
        Initialize conflict checker service.

        Args:
            db: Database session
            repository: Optional ConflictCheckerRepository instance
        """
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)

    @BaseService.measure_operation("detect_conflicts")
    def detect_conflicts(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        teacher_id: Optional[str] = None,
        room: Optional[str] = None,
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Conflict]:
        """
        List the lessons colliding with ``[start, end)``.

        Args:
            tenant_id: Tenant of the caller
            start: Proposed start (timezone-aware)
            end: Proposed end (timezone-aware)
            teacher_id: Teacher to check, if any
            room: Room to check, if any
            exclude_lesson_id: Lesson being edited, ignored

        Returns:
            Conflicts ordered by start time, empty when neither teacher nor
            room is given

        Raises:
            ValidationException: if the interval is empty, inverted or naive
        """
        validate_interval(start, end)
        start, end = ensure_utc(start), ensure_utc(end)

        if not teacher_id and not room:
            return []

        matched: Dict[str, Lesson] = {}
        tags: Dict[str, ConflictType] = {}

        if teacher_id:
            for lesson in self.repository.get_teacher_overlaps(
                tenant_id, teacher_id, start, end, exclude_lesson_id
            ):
                matched[lesson.id] = lesson
                tags[lesson.id] = ConflictType.TEACHER

        if room:
            for lesson in self.repository.get_room_overlaps(tenant_id, room, start, end, exclude_lesson_id):
                matched[lesson.id] = lesson
                tags[lesson.id] = ConflictType.BOTH if lesson.id in tags else ConflictType.ROOM

        conflicts = sorted(
            (Conflict.from_lesson(lesson, tags[lesson_id]) for lesson_id, lesson in matched.items()),
            key=lambda conflict: (conflict.start_time, conflict.id),
        )

        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} lesson conflicts in tenant {tenant_id} "
                f"between {start.isoformat()} and {end.isoformat()} "
                f"(teacher={teacher_id}, room={room})"
            )
            for conflict in conflicts:
                prometheus_metrics.inc_conflicts_detected(conflict.conflict_type.value)

        return conflicts

    def has_conflicts(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        teacher_id: Optional[str] = None,
        room: Optional[str] = None,
        exclude_lesson_id: Optional[str] = None,
    ) -> bool:
        """Simplified boolean check for quick validation."""
        return bool(self.detect_conflicts(tenant_id, start, end, teacher_id, room, exclude_lesson_id))
