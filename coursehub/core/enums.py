# coursehub/core/enums.py
"""
Core enums for CourseHub.

Values are stored as plain strings in the database, so every enum
derives from ``str`` and compares equal to its stored value.
"""

from enum import Enum


class RoleName(str, Enum):
    """Role a user holds inside a tenant."""

    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


ADMIN_ROLES = frozenset({RoleName.ADMIN, RoleName.SUPERADMIN})


class LessonStatus(str, Enum):
    """Lesson lifecycle statuses."""

    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class WaitlistStatus(str, Enum):
    WAITING = "WAITING"
    PROMOTED = "PROMOTED"
    WITHDRAWN = "WITHDRAWN"


class JobState(str, Enum):
    """Automation job states."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobKind(str, Enum):
    """The five automation job kinds understood by the worker pool."""

    ATTENDANCE_REMINDER = "attendance-reminder"
    PAYMENT_REMINDER = "payment-reminder"
    CLASS_CAPACITY_WARNING = "class-capacity-warning"
    AUTO_ENROLLMENT = "auto-enrollment"
    RECURRING_LESSON = "recurring-lesson"


class AttendanceReminderTime(str, Enum):
    BEFORE_CLASS = "before-class"
    AFTER_CLASS = "after-class"


class PaymentReminderType(str, Enum):
    DUE_SOON = "due-soon"
    OVERDUE = "overdue"
    FINAL_NOTICE = "final-notice"


class ConflictType(str, Enum):
    """Which scoped query matched a colliding lesson."""

    TEACHER = "teacher"
    ROOM = "room"
    BOTH = "both"
