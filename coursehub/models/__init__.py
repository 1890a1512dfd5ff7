# coursehub/models/__init__.py
"""
SQLAlchemy models for CourseHub.

Importing this package registers every table on ``Base.metadata``.
"""

from .automation_job import AutomationJob
from .lesson import Lesson
from .payment import Payment
from .people import Student, Teacher
from .school_class import ClassEnrollment, Course, SchoolClass, WaitlistEntry
from .tenant import Tenant, TenantMembership, User

__all__ = [
    "AutomationJob",
    "ClassEnrollment",
    "Course",
    "Lesson",
    "Payment",
    "SchoolClass",
    "Student",
    "Teacher",
    "Tenant",
    "TenantMembership",
    "User",
    "WaitlistEntry",
]
