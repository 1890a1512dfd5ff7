from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple

from .template_registry import TemplateRegistry
from .template_service import TemplateService


@dataclass(frozen=True)
class NotificationTemplate:
    category: str
    type: str
    email_template: TemplateRegistry
    email_subject_template: str

    def render(self, templates: TemplateService, **context: Any) -> Tuple[str, str]:
        """Return ``(subject, body)``; subject slots use ``str.format``."""
        subject = self.email_subject_template.format(**context)
        body = templates.render_template(self.email_template, context)
        return subject, body


# Teacher templates
ATTENDANCE_BEFORE_CLASS = NotificationTemplate(
    category="attendance",
    type="attendance_before_class",
    email_template=TemplateRegistry.ATTENDANCE_BEFORE_CLASS,
    email_subject_template="Reminder: {lesson_title} starts soon",
)

ATTENDANCE_AFTER_CLASS = NotificationTemplate(
    category="attendance",
    type="attendance_after_class",
    email_template=TemplateRegistry.ATTENDANCE_AFTER_CLASS,
    email_subject_template="Record attendance: {lesson_title}",
)

# Student / guardian templates
PAYMENT_DUE_SOON = NotificationTemplate(
    category="payments",
    type="payment_due_soon",
    email_template=TemplateRegistry.PAYMENT_DUE_SOON,
    email_subject_template="Payment reminder: {description} due {due_date}",
)

PAYMENT_OVERDUE = NotificationTemplate(
    category="payments",
    type="payment_overdue",
    email_template=TemplateRegistry.PAYMENT_OVERDUE,
    email_subject_template="Overdue payment: {description}",
)

PAYMENT_FINAL_NOTICE = NotificationTemplate(
    category="payments",
    type="payment_final_notice",
    email_template=TemplateRegistry.PAYMENT_FINAL_NOTICE,
    email_subject_template="Final notice: {description} is {days_overdue} days overdue",
)

ENROLLMENT_PROMOTED = NotificationTemplate(
    category="enrollment",
    type="enrollment_promoted",
    email_template=TemplateRegistry.ENROLLMENT_PROMOTED,
    email_subject_template="You have a place in {class_name}",
)

# Administrator templates
CLASS_CAPACITY_WARNING = NotificationTemplate(
    category="classes",
    type="class_capacity_warning",
    email_template=TemplateRegistry.CLASS_CAPACITY_WARNING,
    email_subject_template="Capacity warning: {class_name} is {capacity_percentage}% full",
)

PAYMENT_TEMPLATES = {
    "due-soon": PAYMENT_DUE_SOON,
    "overdue": PAYMENT_OVERDUE,
    "final-notice": PAYMENT_FINAL_NOTICE,
}
