# coursehub/models/lesson.py
"""
Lesson model for CourseHub.

A lesson is a booked time interval for one class, taught by one teacher,
optionally in a named room. Intervals are half-open: a lesson ending at
11:00 does not collide with one starting at 11:00.

Recurring lessons form a chain: the first lesson of a series is the chain
root and every materialized occurrence points at it through
``parent_lesson_id``. Cancelled lessons stay in the table and are simply
ignored by conflict detection.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import LessonStatus
from ..database import Base


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(String(26), ForeignKey("classes.id"), nullable=False, index=True)
    teacher_id = Column(String(26), ForeignKey("teachers.id"), nullable=False)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    room = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=LessonStatus.SCHEDULED.value, index=True)

    # Recurrence chain
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_rule = Column(String(100), nullable=True)
    recurrence_end = Column(DateTime(timezone=True), nullable=True)
    parent_lesson_id = Column(String(26), ForeignKey("lessons.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    teacher = relationship("Teacher")
    school_class = relationship("SchoolClass")
    parent_lesson = relationship("Lesson", remote_side=[id])

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_lessons_start_before_end"),
        Index("ix_lessons_tenant_teacher_start", "tenant_id", "teacher_id", "start_time"),
        Index("ix_lessons_tenant_room_start", "tenant_id", "room", "start_time"),
        Index("ix_lessons_tenant_status_start", "tenant_id", "status", "start_time"),
    )

    @property
    def chain_root_id(self) -> str:
        """Identity of the lesson that started this recurrence chain."""
        return self.parent_lesson_id or self.id

    def __repr__(self) -> str:
        return f"<Lesson {self.id} {self.title!r} {self.start_time}-{self.end_time} {self.status}>"
