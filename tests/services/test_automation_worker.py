from datetime import timedelta

import pytest

from coursehub.core.enums import JobKind, JobState
from coursehub.domain.automation_jobs import AutoEnrollmentJob
from coursehub.models import AutomationJob
from coursehub.repositories.automation_job_repository import AutomationJobRepository
from coursehub.services.automation_handlers import JobHandlerRegistry
from coursehub.services.automation_queue import AutomationQueue
from tests.conftest import NOW


class ExplodingHandler:
    def __init__(self):
        self.calls = 0

    def handle(self, job, context):
        self.calls += 1
        raise RuntimeError("transport down")


class RecordingHandler:
    def __init__(self):
        self.jobs = []

    def handle(self, job, context):
        self.jobs.append(job)


def _job(db):
    db.expire_all()
    return db.query(AutomationJob).one()


@pytest.fixture
def enrollment_job(db, test_settings):
    AutomationQueue(db, config=test_settings).enqueue(AutoEnrollmentJob(tenant_id="t1", class_id="C1"), now=NOW)
    db.commit()


def test_successful_job_completes(db, make_worker, enrollment_job):
    handler = RecordingHandler()
    worker = make_worker(registry=JobHandlerRegistry({JobKind.AUTO_ENROLLMENT.value: handler}))

    assert worker.run_once(now=NOW) == 1

    job = _job(db)
    assert job.state == JobState.COMPLETED.value
    assert job.attempts == 1
    assert job.finished_at is not None
    assert isinstance(handler.jobs[0], AutoEnrollmentJob)
    assert handler.jobs[0].class_id == "C1"


def test_future_jobs_are_not_claimed(db, make_worker, test_settings):
    AutomationQueue(db, config=test_settings).enqueue(
        AutoEnrollmentJob(tenant_id="t1", class_id="C1"), delay_ms=60_000, now=NOW
    )
    db.commit()

    assert make_worker(registry=JobHandlerRegistry({})).run_once(now=NOW) == 0
    assert _job(db).state == JobState.PENDING.value


def test_transient_failures_retry_until_exhausted(db, make_worker, enrollment_job):
    handler = ExplodingHandler()
    worker = make_worker(registry=JobHandlerRegistry({JobKind.AUTO_ENROLLMENT.value: handler}))

    assert worker.run_once(now=NOW) == 1
    job = _job(db)
    assert job.state == JobState.PENDING.value
    assert "RuntimeError: transport down" in job.last_error

    # Backoff keeps the job out of reach until its delay elapses
    assert worker.run_once(now=NOW) == 0

    worker.run_once(now=NOW + timedelta(minutes=1))
    worker.run_once(now=NOW + timedelta(minutes=2))

    job = _job(db)
    assert job.state == JobState.FAILED.value
    assert job.attempts == 3
    assert handler.calls == 3
    assert worker.run_once(now=NOW + timedelta(hours=1)) == 0


def test_crash_on_the_last_attempt_does_not_earn_another_run(db, make_worker, enrollment_job):
    handler = ExplodingHandler()
    worker = make_worker(registry=JobHandlerRegistry({JobKind.AUTO_ENROLLMENT.value: handler}))
    worker.run_once(now=NOW)
    worker.run_once(now=NOW + timedelta(minutes=1))

    # Third attempt claimed by a worker that dies before recording an outcome
    assert AutomationJobRepository(db).claim(_job(db).id, "crashed-worker", now=NOW + timedelta(minutes=2))

    assert worker.run_once(now=NOW + timedelta(hours=1)) == 0

    job = _job(db)
    assert handler.calls == 2
    assert job.state == JobState.FAILED.value
    assert job.attempts == job.max_attempts == 3


def test_unknown_kind_fails_without_retry(db, make_worker):
    AutomationJobRepository(db).enqueue(
        dedup_key="fax:1",
        tenant_id="t1",
        kind="send-fax",
        payload={"tenant_id": "t1"},
        scheduled_for=NOW,
        max_attempts=3,
        backoff_base_ms=1000,
    )
    db.commit()

    make_worker().run_once(now=NOW)

    job = _job(db)
    assert job.state == JobState.FAILED.value
    assert job.attempts == 1
    assert "send-fax" in job.last_error


def test_unregistered_handler_fails_without_retry(db, make_worker, enrollment_job):
    make_worker(registry=JobHandlerRegistry({})).run_once(now=NOW)

    job = _job(db)
    assert job.state == JobState.FAILED.value
    assert job.attempts == 1


def test_invalid_payload_fails_without_retry(db, make_worker):
    AutomationJobRepository(db).enqueue(
        dedup_key="enrollment:broken",
        tenant_id="t1",
        kind=JobKind.AUTO_ENROLLMENT.value,
        payload={"tenant_id": "t1"},
        scheduled_for=NOW,
        max_attempts=3,
        backoff_base_ms=1000,
    )
    db.commit()

    make_worker().run_once(now=NOW)

    assert _job(db).state == JobState.FAILED.value


def test_execute_ignores_jobs_it_does_not_hold(db, make_worker, enrollment_job):
    job = _job(db)
    assert make_worker().execute(job.id, now=NOW) is None
    assert _job(db).state == JobState.PENDING.value


def test_default_registry_covers_every_kind():
    assert JobHandlerRegistry.default().kinds() == sorted(kind.value for kind in JobKind)


def test_pool_starts_and_stops(make_worker, test_settings):
    test_settings.jobs_poll_interval = 0.05
    worker = make_worker(registry=JobHandlerRegistry({}))

    worker.start()
    assert worker.running
    worker.stop(timeout=2)
    assert not worker.running
