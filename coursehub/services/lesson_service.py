# coursehub/services/lesson_service.py
"""
Lesson Service for CourseHub

Creates lessons and moves them through their lifecycle. Each write runs
in a single transaction. Creation checks for conflicts first and refuses
a colliding slot unless the caller explicitly accepts it; recurring
lessons start their materialization chain on creation.
"""

from dataclasses import asdict
from datetime import datetime
import logging
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.enums import LessonStatus
from ..core.exceptions import (
    InvalidStatusTransitionException,
    LessonConflictException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from ..schemas.lesson import LessonCreate
from .base import BaseService
from .conflict_checker import Conflict, ConflictChecker, validate_interval
from .recurrence import RecurrenceExpander, RecurrenceRule

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[LessonStatus, FrozenSet[LessonStatus]] = {
    LessonStatus.SCHEDULED: frozenset({LessonStatus.IN_PROGRESS, LessonStatus.CANCELLED}),
    LessonStatus.IN_PROGRESS: frozenset({LessonStatus.COMPLETED, LessonStatus.CANCELLED}),
    LessonStatus.COMPLETED: frozenset(),
    LessonStatus.CANCELLED: frozenset(),
}


def _conflict_details(conflicts: List[Conflict]) -> Dict[str, list]:
    return {
        "conflicts": [
            {
                **asdict(conflict),
                "start_time": conflict.start_time.isoformat(),
                "end_time": conflict.end_time.isoformat(),
                "conflict_type": conflict.conflict_type.value,
            }
            for conflict in conflicts
        ]
    }


class LessonService(BaseService):
    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        recurrence: Optional[RecurrenceExpander] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.settings = config or default_settings
        self.repository = RepositoryFactory.create_lesson_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.class_repository = RepositoryFactory.create_school_class_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.recurrence = recurrence or RecurrenceExpander(
            db, config=self.settings, conflict_checker=self.conflict_checker
        )

    def get_lesson(self, tenant_id: str, lesson_id: str) -> Lesson:
        lesson = self.repository.get_with_details(tenant_id, lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
        return lesson

    @BaseService.measure_operation("create_lesson")
    def create_lesson(
        self,
        tenant_id: str,
        data: LessonCreate,
        allow_conflicts: bool = False,
        now: Optional[datetime] = None,
    ) -> Lesson:
        """
        Create a lesson in one transaction.

        Raises:
            ValidationException: bad interval, unknown teacher or class,
                or an unusable recurrence rule
            LessonConflictException: the slot collides and ``allow_conflicts``
                is not set
        """
        validate_interval(data.start_time, data.end_time)

        if self.teacher_repository.get_by_id(tenant_id, data.teacher_id) is None:
            raise ValidationException(f"Teacher {data.teacher_id} not found", code="TEACHER_NOT_FOUND")
        if self.class_repository.get_by_id(tenant_id, data.class_id) is None:
            raise ValidationException(f"Class {data.class_id} not found", code="CLASS_NOT_FOUND")

        rule_string = None
        if data.is_recurring:
            rule = RecurrenceRule.parse(data.recurrence_rule)
            if rule is None:
                raise ValidationException(
                    f"Invalid recurrence rule: {data.recurrence_rule!r}",
                    code="INVALID_RECURRENCE_RULE",
                )
            rule_string = rule.to_rule_string()
            if data.recurrence_end is not None and ensure_utc(data.recurrence_end) < data.start_time:
                raise ValidationException("Recurrence end is before the first lesson", code="INVALID_RECURRENCE_END")

        conflicts = self.conflict_checker.detect_conflicts(
            tenant_id,
            data.start_time,
            data.end_time,
            teacher_id=data.teacher_id,
            room=data.room,
        )
        if conflicts and not allow_conflicts:
            raise LessonConflictException(details=_conflict_details(conflicts))
        if conflicts:
            self.logger.warning(f"Creating lesson despite {len(conflicts)} conflicts in tenant {tenant_id}")

        with self.transaction():
            lesson = self.repository.create(
                tenant_id=tenant_id,
                class_id=data.class_id,
                teacher_id=data.teacher_id,
                title=data.title,
                description=data.description,
                start_time=ensure_utc(data.start_time),
                end_time=ensure_utc(data.end_time),
                room=data.room,
                status=LessonStatus.SCHEDULED.value,
                is_recurring=data.is_recurring,
                recurrence_rule=rule_string,
                recurrence_end=ensure_utc(data.recurrence_end) if data.recurrence_end else None,
            )
            if lesson.is_recurring:
                self.recurrence.start_chain(lesson, now=now)

        self.logger.info(f"Created lesson {lesson.id} in tenant {tenant_id}")
        return lesson

    @BaseService.measure_operation("update_lesson_status")
    def update_status(self, tenant_id: str, lesson_id: str, new_status: LessonStatus) -> Lesson:
        """Move a lesson along SCHEDULED -> IN_PROGRESS -> COMPLETED, or cancel it."""
        lesson = self.repository.get_by_id(tenant_id, lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")

        current = LessonStatus(lesson.status)
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionException(current.value, new_status.value)

        with self.transaction():
            updated = self.repository.update_status(tenant_id, lesson_id, new_status)

        self.logger.info(f"Lesson {lesson_id} moved from {current.value} to {new_status.value}")
        return updated

    @BaseService.measure_operation("reschedule_lesson")
    def reschedule(
        self,
        tenant_id: str,
        lesson_id: str,
        start_time: datetime,
        end_time: datetime,
        room: Optional[str] = None,
        allow_conflicts: bool = False,
    ) -> Lesson:
        """Move a scheduled lesson; the lesson itself never counts as a conflict."""
        validate_interval(start_time, end_time)
        lesson = self.repository.get_by_id(tenant_id, lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
        if lesson.status != LessonStatus.SCHEDULED.value:
            raise InvalidStatusTransitionException(lesson.status, "RESCHEDULED")

        target_room = room if room is not None else lesson.room
        conflicts = self.conflict_checker.detect_conflicts(
            tenant_id,
            start_time,
            end_time,
            teacher_id=lesson.teacher_id,
            room=target_room,
            exclude_lesson_id=lesson.id,
        )
        if conflicts and not allow_conflicts:
            raise LessonConflictException(details=_conflict_details(conflicts))

        with self.transaction():
            updated = self.repository.update(
                tenant_id,
                lesson_id,
                start_time=ensure_utc(start_time),
                end_time=ensure_utc(end_time),
                room=target_room,
            )
        return updated
