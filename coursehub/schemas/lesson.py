# coursehub/schemas/lesson.py
"""Lesson and conflict-check schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..core.enums import ConflictType, LessonStatus
from .base import CamelModel, StandardizedModel, StrictRequestModel


class LessonCreate(StrictRequestModel):
    """
    Create a lesson.

    Times must carry a timezone offset. ``recurrence_rule`` is required
    when ``is_recurring`` is set and uses the
    ``FREQ={DAILY|WEEKLY|MONTHLY};INTERVAL=<n>`` form.
    """

    class_id: str = Field(..., description="Class the lesson belongs to")
    teacher_id: str = Field(..., description="Teacher giving the lesson")
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    start_time: datetime
    end_time: datetime
    room: Optional[str] = Field(None, max_length=100)
    is_recurring: bool = False
    recurrence_rule: Optional[str] = Field(None, max_length=100)
    recurrence_end: Optional[datetime] = None


class LessonStatusUpdate(StrictRequestModel):
    status: LessonStatus


class LessonResponse(StandardizedModel):
    id: str
    class_id: str
    teacher_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    room: Optional[str] = None
    status: LessonStatus
    is_recurring: bool
    recurrence_rule: Optional[str] = None
    recurrence_end: Optional[datetime] = None
    parent_lesson_id: Optional[str] = None


class ConflictItem(CamelModel):
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    room: Optional[str] = None
    teacher_name: str
    class_name: str
    conflict_type: ConflictType


class ConflictCheckResponse(CamelModel):
    has_conflict: bool
    conflicts: List[ConflictItem]
