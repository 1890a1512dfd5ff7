# coursehub/models/automation_job.py
"""
Persisted automation job.

Jobs live in the relational store so they survive process restarts.
``dedup_key`` is deterministic (kind + target entity + sub-type, plus
the lesson slot for attendance reminders) and unique, which makes scheduling idempotent: re-submitting the same key is
a no-op while the row exists. Terminal rows are purged after a retention
window, which frees their keys again.
"""

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
import ulid

from ..core.enums import JobState
from ..database import Base


class AutomationJob(Base):
    __tablename__ = "automation_jobs"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    dedup_key = Column(String(255), nullable=False, unique=True)
    tenant_id = Column(String(26), nullable=False, index=True)
    kind = Column(String(40), nullable=False)
    payload = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=False)
    state = Column(String(20), nullable=False, default=JobState.PENDING.value)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    backoff_base_ms = Column(Integer, nullable=False, default=2000)
    locked_by = Column(String(100), nullable=True)
    last_error = Column(Text, nullable=True)
    progress = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_automation_jobs_state_scheduled_for", "state", "scheduled_for"),
        Index("ix_automation_jobs_state_finished_at", "state", "finished_at"),
    )

    def __repr__(self) -> str:
        return f"<AutomationJob {self.dedup_key} {self.state} attempts={self.attempts}/{self.max_attempts}>"
