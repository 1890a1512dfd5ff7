from datetime import datetime, timezone
from decimal import Decimal

import pytest
from jinja2 import UndefinedError

from coursehub.services.notification_templates import (
    ATTENDANCE_AFTER_CLASS,
    CLASS_CAPACITY_WARNING,
    PAYMENT_TEMPLATES,
)
from coursehub.services.template_service import TemplateService


@pytest.fixture
def templates():
    return TemplateService()


def test_after_class_reminder_contains_attendance_link(templates):
    subject, body = ATTENDANCE_AFTER_CLASS.render(
        templates,
        teacher_name="Maria Lopez",
        lesson_title="Scales",
        start_time=datetime(2025, 3, 3, 17, 0, tzinfo=timezone.utc),
        end_time=datetime(2025, 3, 3, 18, 0, tzinfo=timezone.utc),
        room="R1",
        class_name="Piano - Beginners A",
        student_count=8,
        minutes_before=30,
        attendance_link="https://school.example/dashboard/attendance?lesson=L1",
    )

    assert subject == "Record attendance: Scales"
    assert "https://school.example/dashboard/attendance?lesson=L1" in body
    assert "Maria Lopez" in body


def test_final_notice_mentions_days_overdue(templates):
    subject, body = PAYMENT_TEMPLATES["final-notice"].render(
        templates,
        student_name="Sam Doe",
        amount=Decimal("120.00"),
        description="Spring term tuition",
        due_date="2025-02-01",
        days_overdue=30,
    )

    assert subject == "Final notice: Spring term tuition is 30 days overdue"
    assert "120.00" in body


def test_capacity_subject(templates):
    subject, _ = CLASS_CAPACITY_WARNING.render(
        templates,
        class_name="Piano - Beginners A",
        capacity_percentage=90,
        current_capacity=9,
        max_capacity=10,
        places_left=1,
    )
    assert subject == "Capacity warning: Piano - Beginners A is 90% full"


def test_missing_context_fails_loudly(templates):
    with pytest.raises((KeyError, UndefinedError)):
        CLASS_CAPACITY_WARNING.render(templates, class_name="Piano", capacity_percentage=90)
