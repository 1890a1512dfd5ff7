# coursehub/repositories/__init__.py
"""
Repository layer for CourseHub.

Usage:
    from coursehub.repositories import RepositoryFactory

    # In a service:
    lessons = RepositoryFactory.create_lesson_repository(db)
    lesson = lessons.get_by_id(tenant_id, lesson_id)

Tenant-owned records are only reachable through TenantScopedRepository
finders, which always take the tenant id first.
"""

from .automation_job_repository import AutomationJobRepository
from .base_repository import BaseRepository, TenantScopedRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .factory import RepositoryFactory
from .lesson_repository import LessonRepository
from .payment_repository import PaymentRepository
from .person_repository import StudentRepository, TeacherRepository
from .school_class_repository import SchoolClassRepository
from .tenant_repository import TenantRepository

__all__ = [
    "AutomationJobRepository",
    "BaseRepository",
    "ConflictCheckerRepository",
    "LessonRepository",
    "PaymentRepository",
    "RepositoryFactory",
    "SchoolClassRepository",
    "StudentRepository",
    "TeacherRepository",
    "TenantRepository",
    "TenantScopedRepository",
]
