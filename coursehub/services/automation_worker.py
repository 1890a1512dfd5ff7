# coursehub/services/automation_worker.py
"""
Automation worker pool.

A poller thread wakes every ``jobs_poll_interval`` seconds, returns
stale claims to PENDING, fetches due jobs up to the number of free
slots and claims each with a guarded UPDATE. Claimed jobs run on a
bounded ThreadPoolExecutor, each with its own database session.

Nothing starts at import time; the owning process calls ``start()`` and
``stop()``.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
import logging
import os
import socket
import threading
import time
from typing import Callable, Optional, Set

from sqlalchemy.orm import Session
import ulid

from ..core.config import Settings, settings as default_settings
from ..core.enums import JobState
from ..core.exceptions import PermanentJobError
from ..core.timezone_utils import utcnow
from ..domain.automation_jobs import parse_job
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.automation_job_repository import AutomationJobRepository
from .automation_handlers import JobContext, JobHandlerRegistry
from .notification_sender import NotificationSender, build_notification_sender
from .template_service import TemplateService

logger = logging.getLogger(__name__)


def _default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{str(ulid.ULID())[-6:]}"


class AutomationWorkerPool:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        registry: Optional[JobHandlerRegistry] = None,
        sender: Optional[NotificationSender] = None,
        config: Optional[Settings] = None,
        templates: Optional[TemplateService] = None,
        worker_id: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.settings = config or default_settings
        self.registry = registry or JobHandlerRegistry.default()
        self.sender = sender or build_notification_sender(self.settings)
        self.templates = templates or TemplateService(self.settings)
        self.worker_id = worker_id or _default_worker_id()
        self.concurrency = self.settings.jobs_concurrency

        self._stop_event = threading.Event()
        self._poller: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._in_flight: Set[Future] = set()
        self._lock = threading.Lock()

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._poller is not None and self._poller.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="automation-job"
        )
        self._poller = threading.Thread(target=self._poll_loop, name="automation-poller", daemon=True)
        self._poller.start()
        logger.info(f"Automation worker {self.worker_id} started with concurrency {self.concurrency}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait for in-flight jobs to finish."""
        self._stop_event.set()
        if self._poller is not None:
            self._poller.join(timeout)
            self._poller = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.info(f"Automation worker {self.worker_id} stopped")

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._dispatch_batch()
            except Exception as e:
                logger.error(f"Automation poll failed: {e}", exc_info=True)
            self._stop_event.wait(self.settings.jobs_poll_interval)

    def _free_slots(self) -> int:
        with self._lock:
            return self.concurrency - len(self._in_flight)

    def _dispatch_batch(self) -> None:
        free = self._free_slots()
        if free <= 0 or self._executor is None:
            return

        for job_id in self._claim_due(utcnow(), free):
            future = self._executor.submit(self.execute, job_id)
            with self._lock:
                self._in_flight.add(future)
            future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._in_flight.discard(future)

    # Claiming and execution

    def _claim_due(self, now: datetime, limit: int) -> list:
        db = self.session_factory()
        try:
            repo = AutomationJobRepository(db)
            released = repo.release_stale(
                older_than=now - timedelta(seconds=self.settings.jobs_claim_timeout_seconds), now=now
            )
            if released:
                logger.warning(f"Returned {released} stale ACTIVE jobs to PENDING")

            claimed = []
            for job in repo.fetch_due(now=now, limit=limit):
                if repo.claim(job.id, self.worker_id, now=now):
                    claimed.append(job.id)
                else:
                    logger.debug(f"Job {job.id} was claimed by another worker")
            return claimed
        finally:
            db.close()

    def run_once(self, now: Optional[datetime] = None) -> int:
        """Claim and execute one batch synchronously. Returns the number of jobs run."""
        now = now or utcnow()
        job_ids = self._claim_due(now, self.concurrency)
        for job_id in job_ids:
            self.execute(job_id, now=now)
        return len(job_ids)

    def execute(self, job_id: str, now: Optional[datetime] = None) -> Optional[str]:
        """
        Run one claimed job and record its outcome.

        Returns the resulting job state.
        """
        db = self.session_factory()
        started = time.monotonic()
        kind = "unknown"
        try:
            repo = AutomationJobRepository(db)
            job = repo.get_by_id(job_id)
            if job is None or job.state != JobState.ACTIVE.value:
                return None
            kind = job.kind
            current = now or utcnow()

            try:
                payload = parse_job(job.kind, job.payload)
                handler = self.registry.get(job.kind)
                context = JobContext(
                    db=db,
                    job_id=job.id,
                    sender=self.sender,
                    templates=self.templates,
                    settings=self.settings,
                    now=current,
                    progress=dict(job.progress or {}),
                )
                handler.handle(payload, context)
            except PermanentJobError as e:
                db.rollback()
                repo.mark_failed(
                    job_id, str(e), backoff_cap_ms=self.settings.jobs_backoff_cap_ms, permanent=True, now=current
                )
                logger.error(f"Automation job {job_id} ({kind}) failed permanently: {e}")
                self._record(kind, "failed", started)
                return JobState.FAILED.value
            except Exception as e:
                db.rollback()
                state = repo.mark_failed(
                    job_id,
                    f"{type(e).__name__}: {e}",
                    backoff_cap_ms=self.settings.jobs_backoff_cap_ms,
                    now=current,
                )
                if state == JobState.FAILED.value:
                    logger.error(f"Automation job {job_id} ({kind}) exhausted its attempts: {e}", exc_info=True)
                    self._record(kind, "failed", started)
                else:
                    logger.warning(f"Automation job {job_id} ({kind}) failed, will retry: {e}")
                    self._record(kind, "retry", started)
                return state

            # Commits the handler's writes together with the state change.
            repo.mark_completed(job_id, now=current)
            logger.info(f"Automation job {job_id} ({kind}) completed")
            self._record(kind, "completed", started)
            return JobState.COMPLETED.value
        finally:
            db.close()

    @staticmethod
    def _record(kind: str, outcome: str, started: float) -> None:
        prometheus_metrics.record_job_outcome(kind, outcome, time.monotonic() - started)
