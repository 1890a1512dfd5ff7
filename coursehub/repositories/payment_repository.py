# coursehub/repositories/payment_repository.py
"""Payment reads used by the daily payment reminder scan."""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from ..core.enums import PaymentStatus
from ..models.payment import Payment
from .base_repository import TenantScopedRepository

logger = logging.getLogger(__name__)


class PaymentRepository(TenantScopedRepository[Payment]):
    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_with_student(self, tenant_id: str, payment_id: str) -> Optional[Payment]:
        query = self._scoped(tenant_id).options(joinedload(Payment.student)).filter(Payment.id == payment_id)
        return self._execute_first(query)

    def get_pending_due_between(
        self,
        tenant_id: str,
        lower: datetime,
        upper: datetime,
        *,
        include_upper: bool = False,
    ) -> List[Payment]:
        """
        PENDING payments with ``lower <= due_date < upper``.

        With ``include_upper`` the upper bound is inclusive, which the
        due-soon window needs (due exactly three days out still counts).
        """
        upper_clause = Payment.due_date <= upper if include_upper else Payment.due_date < upper
        query = (
            self._scoped(tenant_id)
            .filter(
                Payment.status == PaymentStatus.PENDING.value,
                Payment.due_date >= lower,
                upper_clause,
            )
            .order_by(Payment.due_date)
        )
        return self._execute_query(query)
