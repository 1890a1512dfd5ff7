# coursehub/schemas/automation.py
"""Automation API schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, model_validator

from ..core.enums import AttendanceReminderTime, PaymentReminderType
from .base import StandardizedModel, StrictRequestModel

AutomationActionName = Literal[
    "run-daily-automation",
    "setup-daily-reminders",
    "setup-payment-reminders",
    "schedule-attendance-reminder",
    "schedule-payment-reminder",
    "check-class-capacity",
    "process-auto-enrollment",
    "generate-recurring-lesson",
]

_REQUIRED_FIELDS: Dict[str, tuple] = {
    "schedule-attendance-reminder": ("lesson_id", "reminder_time"),
    "schedule-payment-reminder": ("payment_id", "reminder_type"),
    "check-class-capacity": ("class_id",),
    "process-auto-enrollment": ("class_id",),
    "generate-recurring-lesson": ("template_lesson_id",),
}


class AutomationActionRequest(StrictRequestModel):
    """One administrative automation action and its arguments."""

    action: AutomationActionName
    lesson_id: Optional[str] = None
    reminder_time: Optional[AttendanceReminderTime] = None
    payment_id: Optional[str] = None
    reminder_type: Optional[PaymentReminderType] = None
    class_id: Optional[str] = None
    waitlist_entry_id: Optional[str] = None
    template_lesson_id: Optional[str] = None
    next_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _require_action_fields(self) -> "AutomationActionRequest":
        missing = [name for name in _REQUIRED_FIELDS.get(self.action, ()) if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{self.action} requires: {', '.join(missing)}")
        return self


class AutomationActionResponse(StandardizedModel):
    action: str
    success: bool = True
    result: Optional[str] = Field(None, description="ACCEPTED or DUPLICATE for single enqueues")
    summary: Optional[Dict[str, Any]] = None


class AutomationStatusResponse(StandardizedModel):
    jobs: Dict[str, int]
    config: Dict[str, Any]


class AutomationJobResponse(StandardizedModel):
    id: str
    dedup_key: str
    tenant_id: str
    kind: str
    state: str
    payload: Dict[str, Any]
    scheduled_for: datetime
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    progress: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class AutomationJobListResponse(StandardizedModel):
    jobs: List[AutomationJobResponse]
    total: int
