from datetime import timedelta

from coursehub.core.enums import AttendanceReminderTime
from coursehub.core.timezone_utils import ensure_utc
from coursehub.domain.automation_jobs import AttendanceReminderJob, AutoEnrollmentJob
from coursehub.models import AutomationJob
from coursehub.services.automation_queue import AutomationQueue, EnqueueResult
from tests.conftest import NOW, at

SLOT = "2025-03-03T10:00:00+00:00/2025-03-03T11:00:00+00:00"


def _reminder(tenant_id="t1", lesson_id="L1"):
    return AttendanceReminderJob(
        tenant_id=tenant_id,
        lesson_id=lesson_id,
        teacher_id="T1",
        reminder_time=AttendanceReminderTime.BEFORE_CLASS,
        lesson_start=at(10),
        lesson_end=at(11),
    )


def test_second_enqueue_of_same_key_is_duplicate(db, test_settings):
    queue = AutomationQueue(db, config=test_settings)

    assert queue.enqueue(_reminder(), delay_ms=60_000, now=NOW) is EnqueueResult.ACCEPTED
    assert queue.enqueue(_reminder(), delay_ms=5_000, now=NOW) is EnqueueResult.DUPLICATE
    db.commit()

    (job,) = db.query(AutomationJob).all()
    assert job.dedup_key == f"attendance:L1:before-class:{SLOT}"
    assert ensure_utc(job.scheduled_for) == NOW + timedelta(minutes=1)
    assert job.max_attempts == test_settings.jobs_max_attempts
    assert job.payload["lesson_id"] == "L1"


def test_negative_delay_runs_immediately(db, test_settings):
    queue = AutomationQueue(db, config=test_settings)
    queue.enqueue(AutoEnrollmentJob(tenant_id="t1", class_id="C1"), delay_ms=-5_000, now=NOW)
    db.commit()

    job = db.query(AutomationJob).one()
    assert ensure_utc(job.scheduled_for) == NOW


def test_explicit_dedup_key_overrides_payload_key(db, test_settings):
    queue = AutomationQueue(db, config=test_settings)

    assert queue.enqueue(_reminder(), dedup_key="manual-1", now=NOW) is EnqueueResult.ACCEPTED
    assert queue.enqueue(_reminder(), now=NOW) is EnqueueResult.ACCEPTED
    db.commit()

    assert db.query(AutomationJob).count() == 2


def test_duplicate_does_not_spoil_the_callers_transaction(db, test_settings):
    queue = AutomationQueue(db, config=test_settings)
    queue.enqueue(_reminder(lesson_id="L1"), now=NOW)
    db.commit()

    assert queue.enqueue(_reminder(lesson_id="L1"), now=NOW) is EnqueueResult.DUPLICATE
    assert queue.enqueue(_reminder(lesson_id="L2"), now=NOW) is EnqueueResult.ACCEPTED
    db.commit()

    assert {job.dedup_key for job in db.query(AutomationJob)} == {
        f"attendance:L1:before-class:{SLOT}",
        f"attendance:L2:before-class:{SLOT}",
    }
