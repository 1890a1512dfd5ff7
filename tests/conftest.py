# tests/conftest.py
"""
Pytest configuration for CourseHub.

Every test gets a fresh in-memory SQLite database shared through a
StaticPool, so the request session, service sessions and worker
sessions all see the same data. Fixtures commit what they create;
worker sessions roll back on failure and must not discard fixture rows.
"""

import os

# Keep a developer's .env out of the test run
os.environ["CI"] = "1"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["AUTOMATION_WORKER_IN_PROCESS"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from coursehub import models  # noqa: F401
from coursehub.core.config import Settings
from coursehub.core.enums import LessonStatus, PaymentStatus, RoleName, WaitlistStatus
from coursehub.core.exceptions import NotificationDeliveryError
from coursehub.database import Base, get_db
from coursehub.main import app
from coursehub.models import (
    ClassEnrollment,
    Course,
    Lesson,
    Payment,
    SchoolClass,
    Student,
    Teacher,
    Tenant,
    TenantMembership,
    User,
    WaitlistEntry,
)
from coursehub.services.automation_worker import AutomationWorkerPool
from coursehub.services.notification_sender import DeliveryResult
from coursehub.services.template_service import TemplateService

UTC = timezone.utc

# Monday 2025-03-03 08:00 UTC
NOW = datetime(2025, 3, 3, 8, 0, tzinfo=UTC)


def at(hour: int, minute: int = 0, day: int = 3) -> datetime:
    """Instant on 2025-03-<day> in UTC."""
    return datetime(2025, 3, day, hour, minute, tzinfo=UTC)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        jobs_concurrency=4,
        jobs_max_attempts=3,
        jobs_backoff_base_ms=1000,
        jobs_backoff_cap_ms=8000,
        frontend_url="https://school.example",
    )


# ============================================================================
# Notification doubles
# ============================================================================


class RecordingSender:
    """Captures every message instead of delivering it."""

    provider = "recording"

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        self.sent.append((to, subject, body))
        return DeliveryResult(to=to, provider=self.provider, message_id=f"msg-{len(self.sent)}")

    @property
    def recipients(self) -> List[str]:
        return [to for to, _, _ in self.sent]


class FailingSender(RecordingSender):
    """Fails for the configured addresses, delivers the rest."""

    def __init__(self, failing: Optional[List[str]] = None) -> None:
        super().__init__()
        self.failing = set(failing or [])
        self.attempts: List[str] = []

    def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        self.attempts.append(to)
        if to in self.failing:
            raise NotificationDeliveryError(f"mailbox unavailable: {to}", [to])
        return super().send(to, subject, body)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def templates(test_settings) -> TemplateService:
    return TemplateService(test_settings)


@pytest.fixture
def make_worker(session_factory, sender, test_settings, templates) -> Callable[..., AutomationWorkerPool]:
    def _make(**overrides) -> AutomationWorkerPool:
        kwargs = dict(
            session_factory=session_factory,
            sender=sender,
            config=test_settings,
            templates=templates,
            worker_id="test-worker",
        )
        kwargs.update(overrides)
        return AutomationWorkerPool(**kwargs)

    return _make


# ============================================================================
# Domain fixtures
# ============================================================================


@pytest.fixture
def tenant(db) -> Tenant:
    tenant = Tenant(name="Northside Music School")
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def other_tenant(db) -> Tenant:
    tenant = Tenant(name="Southside Dance Academy")
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def admin_user(db, tenant) -> User:
    user = User(email="admin@northside.example", first_name="Ada", last_name="Admin")
    db.add(user)
    db.flush()
    db.add(TenantMembership(tenant_id=tenant.id, user_id=user.id, role=RoleName.ADMIN.value))
    db.commit()
    return user


@pytest.fixture
def teacher(db, tenant) -> Teacher:
    teacher = Teacher(tenant_id=tenant.id, first_name="Maria", last_name="Lopez", email="maria@northside.example")
    db.add(teacher)
    db.commit()
    return teacher


@pytest.fixture
def other_teacher(db, tenant) -> Teacher:
    teacher = Teacher(tenant_id=tenant.id, first_name="Tom", last_name="Berg", email="tom@northside.example")
    db.add(teacher)
    db.commit()
    return teacher


@pytest.fixture
def school_class(db, tenant, teacher) -> SchoolClass:
    course = Course(tenant_id=tenant.id, name="Piano")
    db.add(course)
    db.flush()
    school_class = SchoolClass(
        tenant_id=tenant.id, course_id=course.id, teacher_id=teacher.id, name="Beginners A", max_students=10
    )
    db.add(school_class)
    db.commit()
    return school_class


@pytest.fixture
def make_student(db, tenant) -> Callable[..., Student]:
    counter = {"n": 0}

    def _make(
        first_name: Optional[str] = None,
        email: Optional[str] = "auto",
        parent_email: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> Student:
        counter["n"] += 1
        n = counter["n"]
        student = Student(
            tenant_id=tenant_id or tenant.id,
            first_name=first_name or f"Student{n}",
            last_name="Doe",
            email=f"student{n}@mail.example" if email == "auto" else email,
            parent_email=parent_email,
        )
        db.add(student)
        db.commit()
        return student

    return _make


@pytest.fixture
def make_lesson(db, tenant, teacher, school_class) -> Callable[..., Lesson]:
    def _make(
        start: datetime,
        end: Optional[datetime] = None,
        *,
        room: Optional[str] = "R1",
        teacher_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        class_id: Optional[str] = None,
        status: LessonStatus = LessonStatus.SCHEDULED,
        title: str = "Scales and arpeggios",
        is_recurring: bool = False,
        recurrence_rule: Optional[str] = None,
        recurrence_end: Optional[datetime] = None,
    ) -> Lesson:
        lesson = Lesson(
            tenant_id=tenant_id or tenant.id,
            class_id=class_id or school_class.id,
            teacher_id=teacher_id or teacher.id,
            title=title,
            start_time=start,
            end_time=end or start + timedelta(hours=1),
            room=room,
            status=status.value,
            is_recurring=is_recurring,
            recurrence_rule=recurrence_rule,
            recurrence_end=recurrence_end,
        )
        db.add(lesson)
        db.commit()
        return lesson

    return _make


@pytest.fixture
def make_payment(db, tenant) -> Callable[..., Payment]:
    def _make(
        student: Student,
        due_date: datetime,
        *,
        amount: Decimal = Decimal("120.00"),
        status: PaymentStatus = PaymentStatus.PENDING,
    ) -> Payment:
        payment = Payment(
            tenant_id=student.tenant_id,
            student_id=student.id,
            amount=amount,
            description="Spring term tuition",
            due_date=due_date,
            status=status.value,
        )
        db.add(payment)
        db.commit()
        return payment

    return _make


@pytest.fixture
def enroll(db) -> Callable[[SchoolClass, Student], ClassEnrollment]:
    def _enroll(school_class: SchoolClass, student: Student) -> ClassEnrollment:
        enrollment = ClassEnrollment(class_id=school_class.id, student_id=student.id, enrolled_at=NOW)
        db.add(enrollment)
        db.commit()
        return enrollment

    return _enroll


@pytest.fixture
def add_to_waitlist(db) -> Callable[..., WaitlistEntry]:
    def _add(school_class: SchoolClass, student: Student, created_at: datetime) -> WaitlistEntry:
        entry = WaitlistEntry(
            tenant_id=school_class.tenant_id,
            class_id=school_class.id,
            student_id=student.id,
            status=WaitlistStatus.WAITING.value,
            created_at=created_at,
        )
        db.add(entry)
        db.commit()
        return entry

    return _add


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
def client(session_factory) -> TestClient:
    def _override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(tenant_id: str, role: RoleName = RoleName.ADMIN, user_id: str = "user-1") -> Dict[str, str]:
        return {"X-User-Id": user_id, "X-Tenant-Id": tenant_id, "X-User-Role": role.value}

    return _headers
