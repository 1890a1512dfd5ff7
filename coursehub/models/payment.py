# coursehub/models/payment.py
"""Student payment records. Read-only from the automation core's point of view."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import PaymentStatus
from ..database import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(26), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(26), ForeignKey("students.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(String(255), nullable=False, default="")
    due_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    student = relationship("Student")

    __table_args__ = (Index("ix_payments_tenant_status_due", "tenant_id", "status", "due_date"),)
