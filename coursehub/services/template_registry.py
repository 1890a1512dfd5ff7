"""
Template registry for strongly-typed access to Jinja templates.

Use with TemplateService to avoid stringly-typed paths.
"""

from enum import Enum


class TemplateRegistry(str, Enum):
    # Attendance
    ATTENDANCE_BEFORE_CLASS = "email/automation/attendance_before_class.html"
    ATTENDANCE_AFTER_CLASS = "email/automation/attendance_after_class.html"

    # Payments
    PAYMENT_DUE_SOON = "email/automation/payment_due_soon.html"
    PAYMENT_OVERDUE = "email/automation/payment_overdue.html"
    PAYMENT_FINAL_NOTICE = "email/automation/payment_final_notice.html"

    # Classes
    CLASS_CAPACITY_WARNING = "email/automation/capacity_warning.html"
    ENROLLMENT_PROMOTED = "email/automation/enrollment_promoted.html"
