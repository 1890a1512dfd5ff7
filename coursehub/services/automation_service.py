# coursehub/services/automation_service.py
"""
Automation Service for CourseHub

Turns the state of the school into automation jobs. The daily run scans
every tenant for today's lessons (attendance reminders) and for pending
payments inside the reminder windows; event-driven triggers cover class
capacity and waiting-list promotion.

Triggers only enqueue jobs. Handler logic always runs on the worker
pool, and the dedup key of every job makes repeated scans harmless.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.enums import AttendanceReminderTime, PaymentReminderType
from ..core.exceptions import (
    BusinessRuleException,
    NotFoundException,
    RepositoryException,
    ServiceException,
)
from ..core.timezone_utils import ensure_utc, utc_date, utc_day_bounds, utcnow
from ..domain.automation_jobs import (
    AttendanceReminderJob,
    AutoEnrollmentJob,
    ClassCapacityWarningJob,
    PaymentReminderJob,
    RecurringLessonJob,
)
from ..models.automation_job import AutomationJob
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from .automation_queue import AutomationQueue, EnqueueResult
from .base import BaseService
from .recurrence import next_occurrence

logger = logging.getLogger(__name__)


@dataclass
class ScanSummary:
    tenants: int = 0
    accepted: int = 0
    duplicates: int = 0
    failed_tenants: List[str] = field(default_factory=list)

    def count(self, result: EnqueueResult) -> None:
        if result is EnqueueResult.ACCEPTED:
            self.accepted += 1
        else:
            self.duplicates += 1


@dataclass
class DailyRunSummary:
    reminders: Optional[ScanSummary] = None
    payments: Optional[ScanSummary] = None
    errors: List[str] = field(default_factory=list)


class AutomationService(BaseService):
    """Daily automation driver and event-driven job triggers."""

    def __init__(
        self,
        db: Session,
        queue: Optional[AutomationQueue] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.settings = config or default_settings
        self.queue = queue or AutomationQueue(db, config=self.settings)
        self.tenant_repository = RepositoryFactory.create_tenant_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.class_repository = RepositoryFactory.create_school_class_repository(db)
        self.job_repository = RepositoryFactory.create_automation_job_repository(db)

    # Daily run

    @BaseService.measure_operation("run_daily")
    def run_daily(self, now: Optional[datetime] = None) -> DailyRunSummary:
        """Run both daily scans. A failing scan is logged and does not stop the other."""
        now = now or utcnow()
        summary = DailyRunSummary()

        try:
            summary.reminders = self.setup_daily_reminders(now)
        except Exception as e:
            self.logger.error(f"Daily attendance reminder scan failed: {e}", exc_info=True)
            summary.errors.append(f"reminders: {e}")

        try:
            summary.payments = self.setup_payment_reminders(now)
        except Exception as e:
            self.logger.error(f"Daily payment reminder scan failed: {e}", exc_info=True)
            summary.errors.append(f"payments: {e}")

        self.logger.info(f"Daily automation finished: {summary}")
        return summary

    @BaseService.measure_operation("setup_daily_reminders")
    def setup_daily_reminders(self, now: Optional[datetime] = None) -> ScanSummary:
        """
        Enqueue attendance reminders for today's scheduled lessons.

        Today is the UTC day containing ``now``. A reminder whose trigger
        instant has already passed is not enqueued.
        """
        now = now or utcnow()
        day_start, day_end = utc_day_bounds(now)
        summary = ScanSummary()

        for tenant_id in self.tenant_repository.list_tenant_ids():
            summary.tenants += 1
            try:
                with self.transaction():
                    for lesson in self.lesson_repository.get_starting_between(tenant_id, day_start, day_end):
                        for reminder_time in AttendanceReminderTime:
                            result = self._enqueue_attendance(lesson, reminder_time, now)
                            if result is not None:
                                summary.count(result)
            except (RepositoryException, ServiceException, SQLAlchemyError) as e:
                self.logger.error(f"Attendance reminder scan failed for tenant {tenant_id}: {e}")
                summary.failed_tenants.append(tenant_id)

        self.logger.info(
            f"Attendance reminders: {summary.accepted} scheduled, {summary.duplicates} already present"
        )
        return summary

    @BaseService.measure_operation("setup_payment_reminders")
    def setup_payment_reminders(self, now: Optional[datetime] = None) -> ScanSummary:
        """
        Enqueue reminders for pending payments.

        Windows, relative to ``now``:
            due-soon      now <= due <= now + due_soon_days
            overdue       now - overdue_days <= due < now
            final-notice  now - final_notice_days <= due < now - overdue_days
        """
        now = now or utcnow()
        scan_date = utc_date(now)
        due_soon_end = now + timedelta(days=self.settings.payment_due_soon_days)
        overdue_start = now - timedelta(days=self.settings.payment_overdue_days)
        final_start = now - timedelta(days=self.settings.payment_final_notice_days)
        summary = ScanSummary()

        for tenant_id in self.tenant_repository.list_tenant_ids():
            summary.tenants += 1
            try:
                with self.transaction():
                    windows = (
                        (
                            PaymentReminderType.DUE_SOON,
                            self.payment_repository.get_pending_due_between(
                                tenant_id, now, due_soon_end, include_upper=True
                            ),
                        ),
                        (
                            PaymentReminderType.OVERDUE,
                            self.payment_repository.get_pending_due_between(tenant_id, overdue_start, now),
                        ),
                        (
                            PaymentReminderType.FINAL_NOTICE,
                            self.payment_repository.get_pending_due_between(tenant_id, final_start, overdue_start),
                        ),
                    )
                    for reminder_type, payments in windows:
                        for payment in payments:
                            job = PaymentReminderJob(
                                tenant_id=tenant_id,
                                student_id=payment.student_id,
                                payment_id=payment.id,
                                reminder_type=reminder_type,
                                scan_date=scan_date,
                            )
                            summary.count(self.queue.enqueue(job, now=now))
            except (RepositoryException, ServiceException, SQLAlchemyError) as e:
                self.logger.error(f"Payment reminder scan failed for tenant {tenant_id}: {e}")
                summary.failed_tenants.append(tenant_id)

        self.logger.info(f"Payment reminders: {summary.accepted} scheduled, {summary.duplicates} already present")
        return summary

    # Event-driven triggers

    @BaseService.measure_operation("check_class_capacity")
    def check_class_capacity(
        self, tenant_id: str, class_id: str, now: Optional[datetime] = None
    ) -> Optional[EnqueueResult]:
        """Enqueue a capacity warning when the class is at or above the threshold."""
        now = now or utcnow()
        school_class = self.class_repository.get_by_id(tenant_id, class_id)
        if school_class is None:
            raise NotFoundException(f"Class {class_id} not found", code="CLASS_NOT_FOUND")
        if not school_class.max_students or school_class.max_students <= 0:
            return None

        enrolled = self.class_repository.count_enrolled(class_id)
        if enrolled / school_class.max_students < self.settings.capacity_warning_threshold:
            return None

        job = ClassCapacityWarningJob(
            tenant_id=tenant_id,
            class_id=class_id,
            current_capacity=enrolled,
            max_capacity=school_class.max_students,
            check_date=utc_date(now),
        )
        with self.transaction():
            return self.queue.enqueue(job, now=now)

    @BaseService.measure_operation("process_auto_enrollment")
    def process_auto_enrollment(
        self,
        tenant_id: str,
        class_id: str,
        waitlist_entry_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> EnqueueResult:
        """Enqueue waiting-list promotion for a class, typically after an unenrolment."""
        if self.class_repository.get_by_id(tenant_id, class_id) is None:
            raise NotFoundException(f"Class {class_id} not found", code="CLASS_NOT_FOUND")
        job = AutoEnrollmentJob(tenant_id=tenant_id, class_id=class_id, waitlist_entry_id=waitlist_entry_id)
        with self.transaction():
            return self.queue.enqueue(job, now=now)

    # Manual scheduling

    @BaseService.measure_operation("schedule_attendance_reminder")
    def schedule_attendance_reminder(
        self,
        tenant_id: str,
        lesson_id: str,
        reminder_time: AttendanceReminderTime,
        now: Optional[datetime] = None,
    ) -> EnqueueResult:
        now = now or utcnow()
        lesson = self.lesson_repository.get_by_id(tenant_id, lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
        with self.transaction():
            result = self._enqueue_attendance(lesson, reminder_time, now)
        if result is None:
            raise BusinessRuleException(
                f"The {reminder_time.value} reminder time for lesson {lesson_id} has already passed",
                code="REMINDER_IN_PAST",
            )
        return result

    @BaseService.measure_operation("schedule_payment_reminder")
    def schedule_payment_reminder(
        self,
        tenant_id: str,
        payment_id: str,
        reminder_type: PaymentReminderType,
        now: Optional[datetime] = None,
    ) -> EnqueueResult:
        now = now or utcnow()
        payment = self.payment_repository.get_by_id(tenant_id, payment_id)
        if payment is None:
            raise NotFoundException(f"Payment {payment_id} not found", code="PAYMENT_NOT_FOUND")
        job = PaymentReminderJob(
            tenant_id=tenant_id,
            student_id=payment.student_id,
            payment_id=payment.id,
            reminder_type=reminder_type,
            scan_date=utc_date(now),
        )
        with self.transaction():
            return self.queue.enqueue(job, now=now)

    @BaseService.measure_operation("schedule_recurring_lesson")
    def schedule_recurring_lesson(
        self,
        tenant_id: str,
        template_lesson_id: str,
        next_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> EnqueueResult:
        """
        Enqueue materialization of one occurrence right away.

        Without ``next_date`` the occurrence following the template's own
        start is used.
        """
        now = now or utcnow()
        template = self.lesson_repository.get_by_id(tenant_id, template_lesson_id)
        if template is None:
            raise NotFoundException(f"Lesson {template_lesson_id} not found", code="LESSON_NOT_FOUND")
        if not template.is_recurring:
            raise BusinessRuleException(f"Lesson {template_lesson_id} is not recurring", code="NOT_RECURRING")

        if next_date is None:
            next_date = next_occurrence(ensure_utc(template.start_time), template.recurrence_rule)
            if next_date is None:
                raise BusinessRuleException(
                    f"Lesson {template_lesson_id} has an invalid recurrence rule",
                    code="INVALID_RECURRENCE_RULE",
                )

        job = RecurringLessonJob(
            tenant_id=tenant_id,
            template_lesson_id=template.chain_root_id,
            next_date=ensure_utc(next_date),
            pattern_end=ensure_utc(template.recurrence_end) if template.recurrence_end else None,
        )
        with self.transaction():
            return self.queue.enqueue(job, now=now)

    # Inspection and housekeeping

    def get_status(self, tenant_id: Optional[str] = None) -> Dict[str, Any]:
        return {
            "jobs": self.job_repository.count_by_state(tenant_id),
            "config": {
                "concurrency": self.settings.jobs_concurrency,
                "max_attempts": self.settings.jobs_max_attempts,
                "backoff_base_ms": self.settings.jobs_backoff_base_ms,
                "backoff_cap_ms": self.settings.jobs_backoff_cap_ms,
                "daily_run_utc": f"{self.settings.daily_automation_hour:02d}:"
                f"{self.settings.daily_automation_minute:02d}",
                "attendance_before_minutes": self.settings.attendance_before_minutes,
                "attendance_after_minutes": self.settings.attendance_after_minutes,
                "capacity_warning_threshold": self.settings.capacity_warning_threshold,
                "recurrence_lead_days": self.settings.recurrence_lead_days,
            },
        }

    def list_jobs(
        self,
        tenant_id: Optional[str] = None,
        state: Optional[str] = None,
        kind: Optional[str] = None,
        limit: int = 100,
    ) -> List[AutomationJob]:
        return self.job_repository.list_jobs(state=state, kind=kind, tenant_id=tenant_id, limit=limit)

    @BaseService.measure_operation("purge_finished_jobs")
    def purge_finished_jobs(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        deleted = self.job_repository.purge_finished(
            completed_before=now - timedelta(hours=self.settings.jobs_completed_retention_hours),
            failed_before=now - timedelta(hours=self.settings.jobs_failed_retention_hours),
        )
        if deleted:
            self.logger.info(f"Purged {deleted} finished automation jobs")
        return deleted

    # Helpers

    def _enqueue_attendance(
        self, lesson: Lesson, reminder_time: AttendanceReminderTime, now: datetime
    ) -> Optional[EnqueueResult]:
        if reminder_time is AttendanceReminderTime.BEFORE_CLASS:
            trigger = ensure_utc(lesson.start_time) - timedelta(minutes=self.settings.attendance_before_minutes)
        else:
            trigger = ensure_utc(lesson.end_time) + timedelta(minutes=self.settings.attendance_after_minutes)
        if trigger <= now:
            return None

        job = AttendanceReminderJob(
            tenant_id=lesson.tenant_id,
            lesson_id=lesson.id,
            teacher_id=lesson.teacher_id,
            reminder_time=reminder_time,
            lesson_start=ensure_utc(lesson.start_time),
            lesson_end=ensure_utc(lesson.end_time),
        )
        delay_ms = int((trigger - now).total_seconds() * 1000)
        return self.queue.enqueue(job, delay_ms=delay_ms, now=now)
