# coursehub/services/automation_handlers.py
"""
Automation job handlers.

Every handler re-reads the entities it needs. A missing or no longer
relevant entity (cancelled lesson, paid invoice, class below threshold)
is a successful no-op. Transient failures propagate so the worker pool
can retry the job.

Handlers that fan out to several addresses send to each one
independently and record delivered addresses in the job's ``progress``;
a retry skips them. When any address failed the handler raises after
trying all of them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.enums import (
    AttendanceReminderTime,
    JobKind,
    LessonStatus,
    PaymentReminderType,
    PaymentStatus,
    WaitlistStatus,
)
from ..core.exceptions import NotificationDeliveryError, PermanentJobError
from ..core.timezone_utils import ensure_utc
from ..domain.automation_jobs import (
    AttendanceReminderJob,
    AutoEnrollmentJob,
    ClassCapacityWarningJob,
    PaymentReminderJob,
    RecurringLessonJob,
)
from ..repositories import RepositoryFactory
from .automation_queue import AutomationQueue
from .notification_sender import NotificationSender
from .notification_templates import (
    ATTENDANCE_AFTER_CLASS,
    ATTENDANCE_BEFORE_CLASS,
    CLASS_CAPACITY_WARNING,
    ENROLLMENT_PROMOTED,
    PAYMENT_TEMPLATES,
)
from .recurrence import RecurrenceExpander
from .template_service import TemplateService

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """Everything a handler may touch while executing one job."""

    db: Session
    job_id: str
    sender: NotificationSender
    templates: TemplateService
    settings: Settings
    now: datetime
    progress: Dict[str, Any] = field(default_factory=dict)

    def record_progress(self, **updates: Any) -> None:
        """Merge ``updates`` into the job's progress and persist it right away."""
        self.progress.update(updates)
        RepositoryFactory.create_automation_job_repository(self.db).save_progress(
            self.job_id, dict(self.progress)
        )

    def deliver_to_each(
        self, addresses: Iterable[str], subject: str, body: str, progress_key: str = "delivered"
    ) -> List[str]:
        """
        Send one message per address, skipping addresses already delivered.

        Delivered addresses are tracked under ``progress[progress_key]``; a
        handler sending several distinct messages uses one key per message.

        Returns the addresses delivered during this call.

        Raises:
            NotificationDeliveryError: after trying every address, if any failed
        """
        delivered = list(self.progress.get(progress_key, []))
        sent_now: List[str] = []
        failed: List[str] = []
        for address in addresses:
            if address in delivered:
                continue
            try:
                self.sender.send(address, subject, body)
            except NotificationDeliveryError as exc:
                logger.warning(f"Delivery to {address} failed for job {self.job_id}: {exc}")
                failed.append(address)
                continue
            delivered.append(address)
            sent_now.append(address)
            self.record_progress(**{progress_key: delivered})

        if failed:
            raise NotificationDeliveryError(
                f"Delivery failed for {len(failed)} of {len(failed) + len(delivered)} recipients",
                failed,
            )
        return sent_now


def _dedupe(addresses: Iterable[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for address in addresses:
        if address and address not in seen:
            seen.append(address)
    return seen


class JobHandler(Protocol):
    def handle(self, job: Any, context: JobContext) -> None:
        ...


class AttendanceReminderHandler:
    def handle(self, job: AttendanceReminderJob, context: JobContext) -> None:
        lessons = RepositoryFactory.create_lesson_repository(context.db)
        classes = RepositoryFactory.create_school_class_repository(context.db)

        lesson = lessons.get_with_details(job.tenant_id, job.lesson_id)
        if lesson is None:
            logger.info(f"Lesson {job.lesson_id} no longer exists; attendance reminder skipped")
            return

        allowed = {LessonStatus.SCHEDULED.value}
        if job.reminder_time is AttendanceReminderTime.AFTER_CLASS:
            allowed.add(LessonStatus.IN_PROGRESS.value)
        if lesson.status not in allowed:
            logger.info(f"Lesson {lesson.id} is {lesson.status}; {job.reminder_time.value} reminder skipped")
            return
        if not job.matches_slot(lesson.start_time, lesson.end_time):
            logger.info(f"Lesson {lesson.id} was rescheduled; stale {job.reminder_time.value} reminder skipped")
            return

        teacher = lesson.teacher
        if teacher is None or not teacher.email:
            logger.warning(f"Teacher of lesson {lesson.id} has no email address; reminder skipped")
            return

        context_vars: Dict[str, Any] = {
            "teacher_name": teacher.full_name,
            "lesson_title": lesson.title,
            "start_time": ensure_utc(lesson.start_time),
            "end_time": ensure_utc(lesson.end_time),
            "room": lesson.room,
            "class_name": lesson.school_class.display_name if lesson.school_class else "",
            "student_count": classes.count_enrolled(lesson.class_id),
            "minutes_before": context.settings.attendance_before_minutes,
        }
        if job.reminder_time is AttendanceReminderTime.AFTER_CLASS:
            template = ATTENDANCE_AFTER_CLASS
            context_vars["attendance_link"] = (
                f"{context.settings.frontend_url}/dashboard/attendance?lesson={lesson.id}"
            )
        else:
            template = ATTENDANCE_BEFORE_CLASS

        subject, body = template.render(context.templates, **context_vars)
        context.sender.send(teacher.email, subject, body)
        logger.info(f"Attendance reminder ({job.reminder_time.value}) sent for lesson {lesson.id}")


class PaymentReminderHandler:
    def handle(self, job: PaymentReminderJob, context: JobContext) -> None:
        payments = RepositoryFactory.create_payment_repository(context.db)

        payment = payments.get_with_student(job.tenant_id, job.payment_id)
        if payment is None:
            logger.info(f"Payment {job.payment_id} no longer exists; reminder skipped")
            return
        if payment.status not in (PaymentStatus.PENDING.value, PaymentStatus.OVERDUE.value):
            logger.info(f"Payment {payment.id} is {payment.status}; reminder skipped")
            return

        student = payment.student
        if student is None:
            logger.info(f"Student of payment {payment.id} no longer exists; reminder skipped")
            return
        addresses = student.contact_addresses
        if not addresses:
            logger.warning(f"Student {student.id} has no contact address; payment reminder skipped")
            return

        due_date = ensure_utc(payment.due_date)
        days_overdue = 0
        if job.reminder_type is not PaymentReminderType.DUE_SOON:
            days_overdue = max((context.now - due_date) // timedelta(days=1), 0)

        subject, body = PAYMENT_TEMPLATES[job.reminder_type.value].render(
            context.templates,
            student_name=student.full_name,
            amount=payment.amount,
            description=payment.description,
            due_date=due_date.date().isoformat(),
            days_overdue=days_overdue,
        )
        sent = context.deliver_to_each(addresses, subject, body)
        logger.info(f"Payment reminder ({job.reminder_type.value}) for {payment.id} sent to {len(sent)} recipients")


class ClassCapacityWarningHandler:
    def handle(self, job: ClassCapacityWarningJob, context: JobContext) -> None:
        classes = RepositoryFactory.create_school_class_repository(context.db)
        tenants = RepositoryFactory.create_tenant_repository(context.db)

        school_class = classes.get_with_teacher(job.tenant_id, job.class_id)
        if school_class is None:
            logger.info(f"Class {job.class_id} no longer exists; capacity warning skipped")
            return
        if not school_class.max_students or school_class.max_students <= 0:
            return

        enrolled = classes.count_enrolled(school_class.id)
        ratio = enrolled / school_class.max_students
        if ratio < context.settings.capacity_warning_threshold:
            logger.info(f"Class {school_class.id} is at {ratio:.0%}; capacity warning no longer needed")
            return

        recipients = _dedupe(
            [user.email for user in tenants.get_admin_users(job.tenant_id)]
            + [school_class.teacher.email if school_class.teacher else None]
        )
        if not recipients:
            logger.warning(f"No recipients for capacity warning of class {school_class.id}")
            return

        subject, body = CLASS_CAPACITY_WARNING.render(
            context.templates,
            class_name=school_class.display_name,
            capacity_percentage=round(ratio * 100),
            current_capacity=enrolled,
            max_capacity=school_class.max_students,
            places_left=max(school_class.max_students - enrolled, 0),
        )
        sent = context.deliver_to_each(recipients, subject, body)
        logger.info(f"Capacity warning for class {school_class.id} sent to {len(sent)} recipients")


class AutoEnrollmentHandler:
    """
    Promotes waiting students into free places, first come first served.

    Promotions are committed before anyone is notified; the promoted
    student ids are kept in ``progress`` so a retry after a failed
    notification only re-sends the missing messages.
    """

    def handle(self, job: AutoEnrollmentJob, context: JobContext) -> None:
        promoted_ids = list(context.progress.get("promoted", []))
        if not promoted_ids:
            promoted_ids = self._promote(job, context)
            if not promoted_ids:
                return
            context.db.commit()
            context.record_progress(promoted=promoted_ids)

        self._notify(job, promoted_ids, context)

    def _promote(self, job: AutoEnrollmentJob, context: JobContext) -> List[str]:
        classes = RepositoryFactory.create_school_class_repository(context.db)

        school_class = classes.get_with_teacher(job.tenant_id, job.class_id)
        if school_class is None:
            logger.info(f"Class {job.class_id} no longer exists; auto-enrollment skipped")
            return []

        spots = school_class.max_students - classes.count_enrolled(school_class.id)
        if spots <= 0:
            logger.info(f"Class {school_class.id} has no free places; auto-enrollment skipped")
            return []

        if job.waitlist_entry_id:
            entry = classes.get_waitlist_entry(job.tenant_id, job.waitlist_entry_id)
            if entry is None or entry.class_id != school_class.id or entry.status != WaitlistStatus.WAITING.value:
                logger.info(f"Waitlist entry {job.waitlist_entry_id} is no longer waiting; skipped")
                return []
            candidates = [entry]
        else:
            candidates = classes.get_waiting(job.tenant_id, school_class.id, limit=spots)

        promoted: List[str] = []
        for entry in candidates:
            if not classes.is_enrolled(school_class.id, entry.student_id):
                classes.enroll(school_class.id, entry.student_id, context.now)
                promoted.append(entry.student_id)
            entry.status = WaitlistStatus.PROMOTED.value
            entry.promoted_at = context.now
        classes.flush()

        logger.info(f"Promoted {len(promoted)} waiting students into class {school_class.id}")
        return promoted

    def _notify(self, job: AutoEnrollmentJob, student_ids: List[str], context: JobContext) -> None:
        students = RepositoryFactory.create_student_repository(context.db)
        classes = RepositoryFactory.create_school_class_repository(context.db)
        school_class = classes.get_with_teacher(job.tenant_id, job.class_id)
        class_name = school_class.display_name if school_class else ""

        failed: List[str] = []
        for student_id in student_ids:
            student = students.get_by_id(job.tenant_id, student_id)
            if student is None or not student.contact_addresses:
                continue
            subject, body = ENROLLMENT_PROMOTED.render(
                context.templates,
                student_name=student.full_name,
                class_name=class_name,
            )
            try:
                context.deliver_to_each(
                    student.contact_addresses, subject, body, progress_key=f"delivered:{student_id}"
                )
            except NotificationDeliveryError as exc:
                failed.extend(exc.failed_addresses)

        if failed:
            raise NotificationDeliveryError(f"Enrollment notice failed for {len(failed)} recipients", failed)


class RecurringLessonHandler:
    def handle(self, job: RecurringLessonJob, context: JobContext) -> None:
        queue = AutomationQueue(context.db, config=context.settings)
        expander = RecurrenceExpander(context.db, queue=queue, config=context.settings)

        lesson = expander.materialize_next(job.tenant_id, job.template_lesson_id, job.next_date)
        if lesson is None:
            return
        expander.schedule_following(lesson, lesson.start_time, pattern_end=job.pattern_end, now=context.now)


class JobHandlerRegistry:
    """The one mapping from job kind to handler."""

    def __init__(self, handlers: Optional[Dict[str, JobHandler]] = None):
        self._handlers: Dict[str, JobHandler] = dict(handlers or {})

    def register(self, kind: str, handler: JobHandler) -> None:
        self._handlers[str(kind.value if isinstance(kind, JobKind) else kind)] = handler

    def get(self, kind: str) -> JobHandler:
        try:
            return self._handlers[kind]
        except KeyError:
            raise PermanentJobError(f"No handler registered for job kind {kind!r}") from None

    def kinds(self) -> List[str]:
        return sorted(self._handlers)

    @classmethod
    def default(cls) -> "JobHandlerRegistry":
        registry = cls()
        registry.register(JobKind.ATTENDANCE_REMINDER, AttendanceReminderHandler())
        registry.register(JobKind.PAYMENT_REMINDER, PaymentReminderHandler())
        registry.register(JobKind.CLASS_CAPACITY_WARNING, ClassCapacityWarningHandler())
        registry.register(JobKind.AUTO_ENROLLMENT, AutoEnrollmentHandler())
        registry.register(JobKind.RECURRING_LESSON, RecurringLessonHandler())
        return registry

