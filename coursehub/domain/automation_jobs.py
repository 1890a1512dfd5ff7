"""
Automation job payloads.

One tagged union discriminated by ``kind``. Every payload knows its own
deterministic dedup key, and ``parse_job`` is the single place raw
``(kind, payload)`` pairs read back from the store become typed values.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import date, datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ..core.enums import AttendanceReminderTime, JobKind, PaymentReminderType
from ..core.exceptions import PermanentJobError
from ..core.timezone_utils import ensure_utc


class _JobPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: str = Field(..., min_length=1)

    @abstractmethod
    def dedup_key(self) -> str:
        """Deterministic key; an equal key means the same logical job."""

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe payload stored on the job row (``kind`` excluded)."""
        return self.model_dump(mode="json", exclude={"kind"})


class AttendanceReminderJob(_JobPayload):
    kind: Literal["attendance-reminder"] = "attendance-reminder"
    lesson_id: str
    teacher_id: str
    reminder_time: AttendanceReminderTime
    lesson_start: datetime
    lesson_end: datetime

    @field_validator("lesson_start", "lesson_end")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def matches_slot(self, start: datetime, end: datetime) -> bool:
        """False once the lesson has been moved away from the slot this reminder was made for."""
        return ensure_utc(start) == self.lesson_start and ensure_utc(end) == self.lesson_end

    def dedup_key(self) -> str:
        # Keyed by slot: moving the lesson yields new keys
        return (
            f"attendance:{self.lesson_id}:{self.reminder_time.value}:"
            f"{self.lesson_start.isoformat()}/{self.lesson_end.isoformat()}"
        )


class PaymentReminderJob(_JobPayload):
    kind: Literal["payment-reminder"] = "payment-reminder"
    student_id: str
    payment_id: str
    reminder_type: PaymentReminderType
    scan_date: date

    def dedup_key(self) -> str:
        return f"payment:{self.payment_id}:{self.reminder_type.value}:{self.scan_date.isoformat()}"


class ClassCapacityWarningJob(_JobPayload):
    kind: Literal["class-capacity-warning"] = "class-capacity-warning"
    class_id: str
    current_capacity: int = Field(..., ge=0)
    max_capacity: int = Field(..., ge=1)
    check_date: date

    def dedup_key(self) -> str:
        return f"capacity:{self.class_id}:{self.check_date.isoformat()}"


class AutoEnrollmentJob(_JobPayload):
    kind: Literal["auto-enrollment"] = "auto-enrollment"
    class_id: str
    waitlist_entry_id: Optional[str] = None

    def dedup_key(self) -> str:
        return f"enrollment:{self.class_id}:{self.waitlist_entry_id or 'any'}"


class RecurringLessonJob(_JobPayload):
    kind: Literal["recurring-lesson"] = "recurring-lesson"
    template_lesson_id: str
    next_date: datetime
    pattern_end: Optional[datetime] = None

    @field_validator("next_date", "pattern_end")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def dedup_key(self) -> str:
        return f"recurring:{self.template_lesson_id}:{self.next_date.isoformat()}"


AutomationJobPayload = Annotated[
    Union[
        AttendanceReminderJob,
        PaymentReminderJob,
        ClassCapacityWarningJob,
        AutoEnrollmentJob,
        RecurringLessonJob,
    ],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter[AutomationJobPayload] = TypeAdapter(AutomationJobPayload)


def parse_job(kind: str, payload: Dict[str, Any]) -> AutomationJobPayload:
    """
    Decode a stored job.

    Raises:
        PermanentJobError: for an unknown kind or a payload that does not
            match its kind; retrying cannot fix either
    """
    try:
        JobKind(kind)
    except ValueError as exc:
        raise PermanentJobError(f"Unknown automation job kind: {kind!r}") from exc

    if not isinstance(payload, dict):
        raise PermanentJobError(f"Payload for {kind} is not an object")

    try:
        return _payload_adapter.validate_python({**payload, "kind": kind})
    except ValidationError as exc:
        raise PermanentJobError(f"Invalid payload for {kind}: {exc.errors(include_url=False)}") from exc
