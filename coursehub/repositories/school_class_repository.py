# coursehub/repositories/school_class_repository.py
"""Class, roster and waiting list data access."""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..core.enums import WaitlistStatus
from ..models.school_class import ClassEnrollment, SchoolClass, WaitlistEntry
from .base_repository import TenantScopedRepository

logger = logging.getLogger(__name__)


class SchoolClassRepository(TenantScopedRepository[SchoolClass]):
    def __init__(self, db: Session):
        super().__init__(db, SchoolClass)

    def get_with_teacher(self, tenant_id: str, class_id: str) -> Optional[SchoolClass]:
        query = (
            self._scoped(tenant_id)
            .options(joinedload(SchoolClass.teacher), joinedload(SchoolClass.course))
            .filter(SchoolClass.id == class_id)
        )
        return self._execute_first(query)

    def count_enrolled(self, class_id: str) -> int:
        """Number of students on the roster of ``class_id``.

        Callers resolve the class through a tenant-scoped lookup first.
        """
        query = self.db.query(func.count(ClassEnrollment.id)).filter(ClassEnrollment.class_id == class_id)
        return int(self._execute_scalar(query) or 0)

    def is_enrolled(self, class_id: str, student_id: str) -> bool:
        query = self.db.query(ClassEnrollment.id).filter(
            ClassEnrollment.class_id == class_id,
            ClassEnrollment.student_id == student_id,
        )
        return self._execute_first(query) is not None

    def enroll(self, class_id: str, student_id: str, enrolled_at: datetime) -> ClassEnrollment:
        enrollment = ClassEnrollment(class_id=class_id, student_id=student_id, enrolled_at=enrolled_at)
        self.db.add(enrollment)
        self.db.flush()
        return enrollment

    def get_waiting(self, tenant_id: str, class_id: str, limit: Optional[int] = None) -> List[WaitlistEntry]:
        """Waiting candidates of a class, first come first served."""
        query = (
            self.db.query(WaitlistEntry)
            .options(joinedload(WaitlistEntry.student))
            .filter(
                WaitlistEntry.tenant_id == tenant_id,
                WaitlistEntry.class_id == class_id,
                WaitlistEntry.status == WaitlistStatus.WAITING.value,
            )
            .order_by(WaitlistEntry.created_at, WaitlistEntry.id)
        )
        if limit is not None:
            query = query.limit(limit)
        return self._execute_query(query)

    def get_waitlist_entry(self, tenant_id: str, entry_id: str) -> Optional[WaitlistEntry]:
        query = (
            self.db.query(WaitlistEntry)
            .options(joinedload(WaitlistEntry.student))
            .filter(WaitlistEntry.tenant_id == tenant_id, WaitlistEntry.id == entry_id)
        )
        return self._execute_first(query)
