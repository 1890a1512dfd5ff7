# coursehub/services/automation_queue.py
"""
Durable automation queue.

Jobs are rows in the relational store. Enqueueing is idempotent on the
job's dedup key: a key already present, in any state, is reported as
DUPLICATE until the retention purge removes the row.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.timezone_utils import utcnow
from ..domain.automation_jobs import AutomationJobPayload
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.automation_job_repository import AutomationJobRepository

logger = logging.getLogger(__name__)


class EnqueueResult(str, Enum):
    ACCEPTED = "ACCEPTED"
    DUPLICATE = "DUPLICATE"


class AutomationQueue:
    """Producer side of the job engine. Does not commit; callers own the transaction."""

    def __init__(
        self,
        db: Session,
        config: Optional[Settings] = None,
        repository: Optional[AutomationJobRepository] = None,
    ):
        self.db = db
        self.settings = config or default_settings
        self.repository = repository or RepositoryFactory.create_automation_job_repository(db)
        self.logger = logger

    def enqueue(
        self,
        job: AutomationJobPayload,
        delay_ms: int = 0,
        dedup_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> EnqueueResult:
        """
        Schedule ``job`` to run ``delay_ms`` from now.

        Negative delays are treated as zero. ``dedup_key`` defaults to the
        payload's own deterministic key.
        """
        key = dedup_key or job.dedup_key()
        scheduled_for = (now or utcnow()) + timedelta(milliseconds=max(delay_ms, 0))

        created = self.repository.enqueue(
            dedup_key=key,
            tenant_id=job.tenant_id,
            kind=job.kind,
            payload=job.to_payload(),
            scheduled_for=scheduled_for,
            max_attempts=self.settings.jobs_max_attempts,
            backoff_base_ms=self.settings.jobs_backoff_base_ms,
        )

        result = EnqueueResult.ACCEPTED if created is not None else EnqueueResult.DUPLICATE
        prometheus_metrics.record_job_enqueued(job.kind, result.value)
        if result is EnqueueResult.ACCEPTED:
            self.logger.info(f"Enqueued {job.kind} job {key} for {scheduled_for.isoformat()}")
        else:
            self.logger.debug(f"Skipped duplicate {job.kind} job {key}")
        return result
