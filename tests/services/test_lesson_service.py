from datetime import datetime

import pytest

from coursehub.core.enums import JobState, LessonStatus
from coursehub.core.exceptions import (
    InvalidStatusTransitionException,
    LessonConflictException,
    ValidationException,
)
from coursehub.core.timezone_utils import ensure_utc
from coursehub.models import AutomationJob, Lesson
from coursehub.schemas.lesson import LessonCreate
from coursehub.services.automation_service import AutomationService
from coursehub.services.lesson_service import LessonService
from tests.conftest import NOW, at


@pytest.fixture
def service(db, test_settings):
    return LessonService(db, config=test_settings)


@pytest.fixture
def payload(teacher, school_class):
    def _payload(start: datetime, end: datetime, **overrides) -> LessonCreate:
        data = dict(
            class_id=school_class.id,
            teacher_id=teacher.id,
            title="Sight reading",
            start_time=start,
            end_time=end,
            room="R1",
        )
        data.update(overrides)
        return LessonCreate(**data)

    return _payload


class TestCreateLesson:
    def test_creates_scheduled_lesson(self, db, service, tenant, payload):
        lesson = service.create_lesson(tenant.id, payload(at(10), at(11)), now=NOW)

        stored = db.get(Lesson, lesson.id)
        assert stored.status == LessonStatus.SCHEDULED.value
        assert ensure_utc(stored.start_time) == at(10)

    def test_conflicting_slot_is_refused(self, service, tenant, payload, make_lesson):
        existing = make_lesson(at(10), at(11), room="R7")

        with pytest.raises(LessonConflictException) as exc_info:
            service.create_lesson(tenant.id, payload(at(10, 30), at(11, 30)), now=NOW)

        (conflict,) = exc_info.value.details["conflicts"]
        assert conflict["id"] == existing.id
        assert conflict["conflict_type"] == "teacher"

    def test_conflicts_can_be_accepted(self, db, service, tenant, payload, make_lesson):
        make_lesson(at(10), at(11))

        service.create_lesson(tenant.id, payload(at(10, 30), at(11, 30)), allow_conflicts=True, now=NOW)

        assert db.query(Lesson).count() == 2

    def test_unknown_teacher(self, service, tenant, payload):
        with pytest.raises(ValidationException) as exc_info:
            service.create_lesson(tenant.id, payload(at(10), at(11), teacher_id="nobody"), now=NOW)
        assert exc_info.value.code == "TEACHER_NOT_FOUND"

    def test_inverted_interval(self, service, tenant, payload):
        with pytest.raises(ValidationException):
            service.create_lesson(tenant.id, payload(at(11), at(10)), now=NOW)

    def test_recurring_lesson_starts_its_chain(self, db, service, tenant, payload, test_settings):
        lesson = service.create_lesson(
            tenant.id,
            payload(at(17, day=10), at(18, day=10), is_recurring=True, recurrence_rule="freq=weekly"),
            now=NOW,
        )

        assert lesson.recurrence_rule == "FREQ=WEEKLY;INTERVAL=1"
        job = db.query(AutomationJob).one()
        assert job.dedup_key == f"recurring:{lesson.id}:2025-03-17T17:00:00+00:00"
        assert ensure_utc(job.scheduled_for) == at(17, day=10)

    def test_invalid_recurrence_rule(self, db, service, tenant, payload):
        with pytest.raises(ValidationException) as exc_info:
            service.create_lesson(
                tenant.id, payload(at(17), at(18), is_recurring=True, recurrence_rule="FREQ=HOURLY"), now=NOW
            )

        assert exc_info.value.code == "INVALID_RECURRENCE_RULE"
        assert db.query(Lesson).count() == 0


class TestStatusTransitions:
    def test_lifecycle(self, service, tenant, make_lesson):
        lesson = make_lesson(at(10), at(11))

        service.update_status(tenant.id, lesson.id, LessonStatus.IN_PROGRESS)
        updated = service.update_status(tenant.id, lesson.id, LessonStatus.COMPLETED)

        assert updated.status == LessonStatus.COMPLETED.value

    def test_skipping_a_step_is_refused(self, service, tenant, make_lesson):
        lesson = make_lesson(at(10), at(11))

        with pytest.raises(InvalidStatusTransitionException):
            service.update_status(tenant.id, lesson.id, LessonStatus.COMPLETED)

    def test_cancelled_is_terminal(self, service, tenant, make_lesson):
        lesson = make_lesson(at(10), at(11), status=LessonStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransitionException):
            service.update_status(tenant.id, lesson.id, LessonStatus.SCHEDULED)


def test_reschedule_ignores_the_lesson_itself(db, service, tenant, make_lesson):
    lesson = make_lesson(at(10), at(11))

    moved = service.reschedule(tenant.id, lesson.id, at(10, 30), at(11, 30))

    assert ensure_utc(moved.start_time) == at(10, 30)


def test_reschedule_moves_attendance_reminders_with_the_lesson(
    db, service, tenant, make_lesson, make_worker, sender, test_settings
):
    lesson = make_lesson(at(10), at(11))
    automation = AutomationService(db, config=test_settings)
    automation.setup_daily_reminders(NOW)

    service.reschedule(tenant.id, lesson.id, at(16), at(17))
    rescan = automation.setup_daily_reminders(NOW)

    assert (rescan.accepted, rescan.duplicates) == (2, 0)

    # The reminder made for 10:00 comes due at 09:30 and must stay quiet
    assert make_worker().run_once(now=at(9, 30)) == 1
    assert sender.sent == []

    db.expire_all()
    states = {
        ensure_utc(job.scheduled_for): job.state
        for job in db.query(AutomationJob)
        if job.payload["reminder_time"] == "before-class"
    }
    assert states == {at(9, 30): JobState.COMPLETED.value, at(15, 30): JobState.PENDING.value}
