from datetime import timedelta

import pytest

from coursehub.core.enums import AttendanceReminderTime, JobKind, JobState, LessonStatus, PaymentStatus
from coursehub.core.exceptions import BusinessRuleException, NotFoundException
from coursehub.core.timezone_utils import ensure_utc
from coursehub.models import AutomationJob
from coursehub.services.automation_queue import EnqueueResult
from coursehub.services.automation_service import AutomationService
from tests.conftest import NOW, at


@pytest.fixture
def service(db, test_settings):
    return AutomationService(db, config=test_settings)


def _jobs(db, kind):
    db.expire_all()
    return db.query(AutomationJob).filter(AutomationJob.kind == kind.value).order_by(AutomationJob.dedup_key).all()


class TestPaymentScan:
    def test_classifies_pending_payments_into_windows(self, db, service, make_student, make_payment):
        student = make_student()
        due_soon = make_payment(student, NOW + timedelta(days=2))
        overdue = make_payment(student, NOW - timedelta(days=5))
        final = make_payment(student, NOW - timedelta(days=10))
        make_payment(student, NOW - timedelta(days=40))
        make_payment(student, NOW + timedelta(days=5))
        make_payment(student, NOW + timedelta(days=1), status=PaymentStatus.PAID)

        summary = service.setup_payment_reminders(NOW)

        assert summary.accepted == 3
        keys = {job.dedup_key for job in _jobs(db, JobKind.PAYMENT_REMINDER)}
        assert keys == {
            f"payment:{due_soon.id}:due-soon:2025-03-03",
            f"payment:{overdue.id}:overdue:2025-03-03",
            f"payment:{final.id}:final-notice:2025-03-03",
        }

    def test_payment_due_in_two_days_gets_one_reminder(self, db, service, make_student, make_payment):
        make_payment(make_student(), NOW + timedelta(days=2))

        service.setup_payment_reminders(NOW)

        (job,) = _jobs(db, JobKind.PAYMENT_REMINDER)
        assert job.payload["reminder_type"] == "due-soon"
        assert job.state == JobState.PENDING.value

    def test_rescanning_the_same_day_adds_nothing(self, db, service, make_student, make_payment):
        make_payment(make_student(), NOW + timedelta(days=2))

        service.setup_payment_reminders(NOW)
        second = service.setup_payment_reminders(NOW + timedelta(hours=3))

        assert (second.accepted, second.duplicates) == (0, 1)
        assert len(_jobs(db, JobKind.PAYMENT_REMINDER)) == 1

    def test_scans_every_tenant(self, db, service, tenant, other_tenant, make_student, make_payment):
        make_payment(make_student(), NOW + timedelta(days=1))
        make_payment(make_student(tenant_id=other_tenant.id), NOW + timedelta(days=1))

        summary = service.setup_payment_reminders(NOW)

        assert summary.tenants == 2
        assert summary.accepted == 2
        assert {job.tenant_id for job in _jobs(db, JobKind.PAYMENT_REMINDER)} == {tenant.id, other_tenant.id}


class TestAttendanceScan:
    def test_schedules_reminders_for_todays_lessons(self, db, service, make_lesson):
        evening = make_lesson(at(17), at(18), room="R1")
        early = make_lesson(at(8, 15), at(9), room="R2")
        make_lesson(at(10, day=4), at(11, day=4), room="R3")
        make_lesson(at(12), at(13), room="R4", status=LessonStatus.CANCELLED)

        summary = service.setup_daily_reminders(NOW)

        assert summary.accepted == 3
        jobs = {
            (job.payload["lesson_id"], job.payload["reminder_time"]): job
            for job in _jobs(db, JobKind.ATTENDANCE_REMINDER)
        }
        assert set(jobs) == {
            (evening.id, "before-class"),
            (evening.id, "after-class"),
            (early.id, "after-class"),
        }
        assert ensure_utc(jobs[(evening.id, "before-class")].scheduled_for) == at(16, 30)
        assert ensure_utc(jobs[(evening.id, "after-class")].scheduled_for) == at(18, 15)

    def test_rerun_is_idempotent(self, db, service, make_lesson):
        make_lesson(at(17), at(18))

        service.setup_daily_reminders(NOW)
        second = service.setup_daily_reminders(NOW + timedelta(minutes=5))

        assert second.accepted == 0
        assert second.duplicates == 2


class TestDailyRun:
    def test_failing_scan_does_not_stop_the_other(self, db, service, make_student, make_payment, monkeypatch):
        make_payment(make_student(), NOW + timedelta(days=1))

        def _boom(now=None):
            raise RuntimeError("lesson store unavailable")

        monkeypatch.setattr(service, "setup_daily_reminders", _boom)

        summary = service.run_daily(NOW)

        assert summary.reminders is None
        assert summary.payments.accepted == 1
        assert summary.errors == ["reminders: lesson store unavailable"]


class TestEventTriggers:
    def test_capacity_below_threshold_enqueues_nothing(self, service, tenant, school_class, make_student, enroll):
        for _ in range(8):
            enroll(school_class, make_student())

        assert service.check_class_capacity(tenant.id, school_class.id, now=NOW) is None

    def test_capacity_warning_once_per_day(self, service, tenant, school_class, make_student, enroll):
        for _ in range(9):
            enroll(school_class, make_student())

        assert service.check_class_capacity(tenant.id, school_class.id, now=NOW) is EnqueueResult.ACCEPTED
        assert service.check_class_capacity(tenant.id, school_class.id, now=NOW) is EnqueueResult.DUPLICATE

    def test_capacity_for_unknown_class(self, service, tenant):
        with pytest.raises(NotFoundException):
            service.check_class_capacity(tenant.id, "missing", now=NOW)

    def test_attendance_reminder_in_the_past_is_refused(self, service, tenant, make_lesson):
        lesson = make_lesson(at(8, 15), at(9))

        with pytest.raises(BusinessRuleException) as exc_info:
            service.schedule_attendance_reminder(tenant.id, lesson.id, AttendanceReminderTime.BEFORE_CLASS, now=NOW)
        assert exc_info.value.code == "REMINDER_IN_PAST"

    def test_recurring_lesson_defaults_to_the_next_occurrence(self, db, service, tenant, make_lesson):
        template = make_lesson(at(17), at(18), is_recurring=True, recurrence_rule="FREQ=DAILY;INTERVAL=2")

        assert service.schedule_recurring_lesson(tenant.id, template.id, now=NOW) is EnqueueResult.ACCEPTED

        (job,) = _jobs(db, JobKind.RECURRING_LESSON)
        assert job.dedup_key == f"recurring:{template.id}:2025-03-05T17:00:00+00:00"

    def test_non_recurring_lesson_is_refused(self, service, tenant, make_lesson):
        lesson = make_lesson(at(17), at(18))

        with pytest.raises(BusinessRuleException):
            service.schedule_recurring_lesson(tenant.id, lesson.id, now=NOW)


class TestHousekeeping:
    def test_status_counts_jobs_per_tenant(self, db, service, tenant, other_tenant, make_lesson):
        make_lesson(at(17), at(18))
        service.setup_daily_reminders(NOW)

        status = service.get_status(tenant.id)

        assert status["jobs"]["PENDING"] == 2
        assert status["config"]["max_attempts"] == 3
        assert service.get_status(other_tenant.id)["jobs"]["PENDING"] == 0

    def test_purge_uses_retention_windows(self, db, service, make_lesson):
        make_lesson(at(17), at(18))
        service.setup_daily_reminders(NOW)
        for job in db.query(AutomationJob):
            job.state = JobState.COMPLETED.value
            job.finished_at = NOW
        db.commit()

        assert service.purge_finished_jobs(NOW + timedelta(days=6)) == 0
        assert service.purge_finished_jobs(NOW + timedelta(days=8)) == 2
