"""Repository for persisted automation jobs."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, cast

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.enums import JobState
from ..core.exceptions import RepositoryException
from ..core.timezone_utils import utcnow
from ..models.automation_job import AutomationJob

logger = logging.getLogger(__name__)


def compute_backoff_ms(attempts: int, base_ms: int, cap_ms: int) -> int:
    """Exponential backoff: ``base * 2**(attempts-1)``, capped."""
    exponent = max(attempts - 1, 0)
    return min(cap_ms, base_ms * (2**exponent))


class AutomationJobRepository:
    """Data access helpers for the automation_jobs table."""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logger

    def get_by_id(self, job_id: str) -> Optional[AutomationJob]:
        try:
            return cast(Optional[AutomationJob], self.db.get(AutomationJob, job_id))
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load job %s: %s", job_id, str(exc))
            raise RepositoryException("Failed to load automation job") from exc

    def get_by_dedup_key(self, dedup_key: str) -> Optional[AutomationJob]:
        try:
            return cast(
                Optional[AutomationJob],
                self.db.query(AutomationJob).filter(AutomationJob.dedup_key == dedup_key).first(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to look up job %s: %s", dedup_key, str(exc))
            raise RepositoryException("Failed to look up automation job") from exc

    def enqueue(
        self,
        *,
        dedup_key: str,
        tenant_id: str,
        kind: str,
        payload: Dict[str, Any],
        scheduled_for: datetime,
        max_attempts: int,
        backoff_base_ms: int,
    ) -> Optional[AutomationJob]:
        """
        Persist a new PENDING job.

        Returns ``None`` when a job with the same dedup key already exists,
        whatever its state. Insertion runs in a SAVEPOINT so a lost race on
        the unique constraint does not spoil the caller's transaction.
        """
        if self.get_by_dedup_key(dedup_key) is not None:
            return None

        now = utcnow()
        job = AutomationJob(
            id=str(ulid.ULID()),
            dedup_key=dedup_key,
            tenant_id=tenant_id,
            kind=kind,
            payload=payload,
            state=JobState.PENDING.value,
            scheduled_for=scheduled_for,
            attempts=0,
            max_attempts=max_attempts,
            backoff_base_ms=backoff_base_ms,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.db.begin_nested():
                self.db.add(job)
                self.db.flush()
            return job
        except IntegrityError:
            self.logger.info("Job %s was enqueued concurrently; treating as duplicate", dedup_key)
            return None
        except SQLAlchemyError as exc:
            self.logger.error("Failed to enqueue job %s: %s", dedup_key, str(exc))
            raise RepositoryException("Failed to enqueue automation job") from exc

    def fetch_due(self, *, now: Optional[datetime] = None, limit: int = 50) -> List[AutomationJob]:
        """Return PENDING jobs whose ``scheduled_for`` has passed, oldest first."""
        if limit <= 0:
            return []
        try:
            jobs = (
                self.db.query(AutomationJob)
                .filter(
                    AutomationJob.state == JobState.PENDING.value,
                    AutomationJob.scheduled_for <= (now or utcnow()),
                )
                .order_by(AutomationJob.scheduled_for.asc(), AutomationJob.id.asc())
                .limit(limit)
                .all()
            )
            return cast(List[AutomationJob], jobs)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to fetch due jobs: %s", str(exc))
            raise RepositoryException("Failed to fetch automation jobs") from exc

    def claim(self, job_id: str, worker_id: str, *, now: Optional[datetime] = None) -> bool:
        """
        Atomically move a PENDING job to ACTIVE for ``worker_id``.

        The UPDATE is guarded by ``state = 'PENDING'`` and by the attempt
        ceiling; only the caller that sees a row count of 1 owns the job. ``attempts`` is incremented here
        so a crash mid-execution still counts against the ceiling.
        """
        try:
            updated = (
                self.db.query(AutomationJob)
                .filter(
                    AutomationJob.id == job_id,
                    AutomationJob.state == JobState.PENDING.value,
                    AutomationJob.attempts < AutomationJob.max_attempts,
                )
                .update(
                    {
                        AutomationJob.state: JobState.ACTIVE.value,
                        AutomationJob.locked_by: worker_id,
                        AutomationJob.attempts: AutomationJob.attempts + 1,
                        AutomationJob.updated_at: now or utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
            return updated == 1
        except SQLAlchemyError as exc:
            self.logger.error("Failed to claim job %s: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to claim automation job") from exc

    def save_progress(self, job_id: str, progress: Dict[str, Any]) -> None:
        """Persist partial progress immediately, outside the handler's unit of work."""
        try:
            self.db.query(AutomationJob).filter(AutomationJob.id == job_id).update(
                {
                    AutomationJob.progress: progress,
                    AutomationJob.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to save progress for job %s: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to save job progress") from exc

    def mark_completed(self, job_id: str, *, now: Optional[datetime] = None) -> None:
        finished = now or utcnow()
        try:
            self.db.query(AutomationJob).filter(AutomationJob.id == job_id).update(
                {
                    AutomationJob.state: JobState.COMPLETED.value,
                    AutomationJob.locked_by: None,
                    AutomationJob.last_error: None,
                    AutomationJob.finished_at: finished,
                    AutomationJob.updated_at: finished,
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to mark job %s completed: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to mark job completed") from exc

    def mark_failed(
        self,
        job_id: str,
        error: str,
        *,
        backoff_cap_ms: int,
        permanent: bool = False,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Record a failed attempt.

        Below ``max_attempts`` the job goes back to PENDING with exponential
        backoff; at the ceiling, or when ``permanent`` is set, it becomes
        FAILED. Returns the resulting state, or ``None`` for a missing job.
        """
        current = now or utcnow()
        try:
            self.db.expire_all()
            job = self.db.get(AutomationJob, job_id)
            if job is None:
                self.logger.warning("Attempted to mark missing job %s failed", job_id)
                return None

            attempts = job.attempts or 0
            job.last_error = error
            job.locked_by = None
            job.updated_at = current
            if permanent or attempts >= job.max_attempts:
                job.state = JobState.FAILED.value
                job.finished_at = current
            else:
                delay_ms = compute_backoff_ms(attempts, job.backoff_base_ms, backoff_cap_ms)
                job.state = JobState.PENDING.value
                job.scheduled_for = current + timedelta(milliseconds=delay_ms)

            self.db.commit()
            return cast(str, job.state)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to reschedule job %s: %s", job_id, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to record job failure") from exc

    def release_stale(self, *, older_than: datetime, now: Optional[datetime] = None) -> int:
        """
        Recover ACTIVE jobs last touched before ``older_than``.

        A claim that still has attempts left goes back to PENDING. One that
        used the final attempt becomes FAILED, since the abandoned run counted.
        Returns the number of jobs put back to PENDING.
        """
        current = now or utcnow()
        try:
            stale = self.db.query(AutomationJob).filter(
                AutomationJob.state == JobState.ACTIVE.value,
                AutomationJob.updated_at < older_than,
            )
            exhausted = stale.filter(AutomationJob.attempts >= AutomationJob.max_attempts).update(
                {
                    AutomationJob.state: JobState.FAILED.value,
                    AutomationJob.locked_by: None,
                    AutomationJob.last_error: "Claim timed out on the final attempt",
                    AutomationJob.finished_at: current,
                    AutomationJob.updated_at: current,
                },
                synchronize_session=False,
            )
            released = stale.filter(AutomationJob.attempts < AutomationJob.max_attempts).update(
                {
                    AutomationJob.state: JobState.PENDING.value,
                    AutomationJob.locked_by: None,
                    AutomationJob.updated_at: current,
                },
                synchronize_session=False,
            )
            self.db.commit()
            if exhausted:
                self.logger.warning("Failed %s stale jobs that had no attempts left", exhausted)
            return int(released or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to release stale jobs: %s", str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to release stale automation jobs") from exc

    def purge_finished(self, *, completed_before: datetime, failed_before: datetime) -> int:
        """Delete terminal jobs past their retention window. Frees their dedup keys."""
        try:
            deleted = 0
            for state, cutoff in (
                (JobState.COMPLETED, completed_before),
                (JobState.FAILED, failed_before),
            ):
                deleted += (
                    self.db.query(AutomationJob)
                    .filter(
                        AutomationJob.state == state.value,
                        AutomationJob.finished_at < cutoff,
                    )
                    .delete(synchronize_session=False)
                )
            self.db.commit()
            return deleted
        except SQLAlchemyError as exc:
            self.logger.error("Failed to purge finished jobs: %s", str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to purge automation jobs") from exc

    def count_by_state(self, tenant_id: Optional[str] = None) -> Dict[str, int]:
        try:
            query = self.db.query(AutomationJob.state, func.count(AutomationJob.id))
            if tenant_id:
                query = query.filter(AutomationJob.tenant_id == tenant_id)
            rows = query.group_by(AutomationJob.state).all()
            counts = {state.value: 0 for state in JobState}
            for state, total in rows:
                counts[state] = int(total)
            return counts
        except SQLAlchemyError as exc:
            self.logger.error("Failed to count jobs: %s", str(exc))
            raise RepositoryException("Failed to count automation jobs") from exc

    def list_jobs(
        self,
        *,
        state: Optional[str] = None,
        kind: Optional[str] = None,
        tenant_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AutomationJob]:
        try:
            query = self.db.query(AutomationJob)
            if state:
                query = query.filter(AutomationJob.state == state)
            if kind:
                query = query.filter(AutomationJob.kind == kind)
            if tenant_id:
                query = query.filter(AutomationJob.tenant_id == tenant_id)
            jobs = query.order_by(AutomationJob.created_at.desc(), AutomationJob.id.desc()).limit(limit).all()
            return cast(List[AutomationJob], jobs)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list jobs: %s", str(exc))
            raise RepositoryException("Failed to list automation jobs") from exc
