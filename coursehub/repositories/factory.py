# coursehub/repositories/factory.py
"""
Repository Factory for CourseHub

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .automation_job_repository import AutomationJobRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .lesson_repository import LessonRepository
    from .payment_repository import PaymentRepository
    from .person_repository import StudentRepository, TeacherRepository
    from .school_class_repository import SchoolClassRepository
    from .tenant_repository import TenantRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation so services and tests build them
    the same way.
    """

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for conflict checking queries."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_school_class_repository(db: Session) -> "SchoolClassRepository":
        from .school_class_repository import SchoolClassRepository

        return SchoolClassRepository(db)

    @staticmethod
    def create_teacher_repository(db: Session) -> "TeacherRepository":
        from .person_repository import TeacherRepository

        return TeacherRepository(db)

    @staticmethod
    def create_student_repository(db: Session) -> "StudentRepository":
        from .person_repository import StudentRepository

        return StudentRepository(db)

    @staticmethod
    def create_tenant_repository(db: Session) -> "TenantRepository":
        """Create repository for privileged tenant listing."""
        from .tenant_repository import TenantRepository

        return TenantRepository(db)

    @staticmethod
    def create_automation_job_repository(db: Session) -> "AutomationJobRepository":
        """Create repository for automation job persistence."""
        from .automation_job_repository import AutomationJobRepository

        return AutomationJobRepository(db)
