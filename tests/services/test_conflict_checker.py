from datetime import datetime, timedelta, timezone

import pytest

from coursehub.core.enums import ConflictType, LessonStatus
from coursehub.core.exceptions import ValidationException
from coursehub.services.conflict_checker import ConflictChecker
from tests.conftest import at


@pytest.fixture
def checker(db):
    return ConflictChecker(db)


@pytest.fixture
def existing(make_lesson):
    """L1: teacher T, room R1, 10:00-11:00."""
    return make_lesson(at(10), at(11), room="R1", title="L1")


class TestDetectConflicts:
    def test_same_teacher_other_room(self, checker, tenant, teacher, existing):
        conflicts = checker.detect_conflicts(tenant.id, at(10, 30), at(11, 30), teacher_id=teacher.id, room="R2")

        assert len(conflicts) == 1
        assert conflicts[0].id == existing.id
        assert conflicts[0].conflict_type is ConflictType.TEACHER

    def test_other_teacher_same_room(self, checker, tenant, other_teacher, existing):
        conflicts = checker.detect_conflicts(
            tenant.id, at(10, 30), at(11, 30), teacher_id=other_teacher.id, room="R1"
        )

        assert [(c.id, c.conflict_type) for c in conflicts] == [(existing.id, ConflictType.ROOM)]

    def test_touching_boundary_is_not_a_conflict(self, checker, tenant, teacher, existing):
        assert checker.detect_conflicts(tenant.id, at(11), at(12), teacher_id=teacher.id, room="R1") == []

    def test_same_teacher_and_room_is_reported_once(self, checker, tenant, teacher, existing):
        conflicts = checker.detect_conflicts(tenant.id, at(10), at(11), teacher_id=teacher.id, room="R1")

        assert len(conflicts) == 1
        assert conflicts[0].conflict_type is ConflictType.BOTH

    def test_projection_carries_display_fields(self, checker, tenant, teacher, existing):
        (conflict,) = checker.detect_conflicts(tenant.id, at(10), at(11), teacher_id=teacher.id)

        assert conflict.title == "L1"
        assert conflict.teacher_name == "Maria Lopez"
        assert conflict.class_name == "Piano - Beginners A"
        assert conflict.start_time == at(10)

    def test_results_are_ordered_by_start(self, checker, tenant, teacher, other_teacher, make_lesson):
        late = make_lesson(at(14), at(15), room="R1")
        early = make_lesson(at(9), at(10), room="R9", teacher_id=other_teacher.id)
        middle = make_lesson(at(11), at(12), room="R3")

        conflicts = checker.detect_conflicts(tenant.id, at(8), at(16), teacher_id=teacher.id, room="R9")

        assert [c.id for c in conflicts] == [early.id, middle.id, late.id]

    def test_cancelled_lessons_are_ignored(self, checker, tenant, teacher, make_lesson):
        make_lesson(at(10), at(11), status=LessonStatus.CANCELLED)

        assert checker.has_conflicts(tenant.id, at(10), at(11), teacher_id=teacher.id, room="R1") is False

    def test_edited_lesson_does_not_conflict_with_itself(self, checker, tenant, teacher, existing):
        assert (
            checker.detect_conflicts(
                tenant.id, at(10, 15), at(11, 15), teacher_id=teacher.id, room="R1", exclude_lesson_id=existing.id
            )
            == []
        )

    def test_offsets_are_normalized(self, checker, tenant, teacher, existing):
        plus_two = timezone(timedelta(hours=2))
        start = datetime(2025, 3, 3, 12, 30, tzinfo=plus_two)  # 10:30 UTC

        conflicts = checker.detect_conflicts(tenant.id, start, start + timedelta(hours=1), teacher_id=teacher.id)

        assert [c.id for c in conflicts] == [existing.id]

    def test_nothing_to_check_without_teacher_or_room(self, checker, tenant, existing):
        assert checker.detect_conflicts(tenant.id, at(10), at(11)) == []

    def test_other_tenants_are_invisible(self, checker, other_tenant, teacher, existing):
        assert checker.detect_conflicts(other_tenant.id, at(10), at(11), teacher_id=teacher.id, room="R1") == []


class TestIntervalValidation:
    def test_empty_interval(self, checker, tenant, teacher):
        with pytest.raises(ValidationException) as exc_info:
            checker.detect_conflicts(tenant.id, at(10), at(10), teacher_id=teacher.id)
        assert exc_info.value.code == "INVALID_TIME_RANGE"

    def test_inverted_interval(self, checker, tenant, teacher):
        with pytest.raises(ValidationException):
            checker.detect_conflicts(tenant.id, at(11), at(10), teacher_id=teacher.id)

    def test_naive_datetimes(self, checker, tenant, teacher):
        with pytest.raises(ValidationException) as exc_info:
            checker.detect_conflicts(tenant.id, datetime(2025, 3, 3, 10), datetime(2025, 3, 3, 11), room="R1")
        assert exc_info.value.code == "NAIVE_DATETIME"
