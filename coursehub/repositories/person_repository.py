# coursehub/repositories/person_repository.py
"""Teacher and student lookups."""

from sqlalchemy.orm import Session

from ..models.people import Student, Teacher
from .base_repository import TenantScopedRepository


class TeacherRepository(TenantScopedRepository[Teacher]):
    def __init__(self, db: Session):
        super().__init__(db, Teacher)


class StudentRepository(TenantScopedRepository[Student]):
    def __init__(self, db: Session):
        super().__init__(db, Student)
