# coursehub/services/recurrence.py
"""
Recurring lessons.

A recurring lesson is the root of a chain. Occurrences are materialized
one at a time on a rolling basis: each recurrence job creates the next
lesson and enqueues the job for the one after it, until the series end
date is passed or the root is cancelled.

Rule grammar: ``FREQ={DAILY|WEEKLY|MONTHLY};INTERVAL=<n>`` with
``INTERVAL`` defaulting to 1. Keys are case-insensitive.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
import logging
from typing import TYPE_CHECKING, Optional, TypeVar, Union

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.enums import LessonStatus
from ..core.timezone_utils import ensure_utc, utcnow
from ..domain.automation_jobs import RecurringLessonJob
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker

if TYPE_CHECKING:
    from .automation_queue import AutomationQueue, EnqueueResult

logger = logging.getLogger(__name__)

D = TypeVar("D", date, datetime)


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


def add_months(value: D, months: int) -> D:
    """Shift ``value`` by whole calendar months, clamping to the last day of the target month."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["RecurrenceRule"]:
        """
        Parse a rule string. Returns ``None`` for anything malformed:
        unknown frequency or key, a repeated key, a missing FREQ, or an
        interval that is not a positive integer.
        """
        if not text or not text.strip():
            return None

        parts = {}
        for segment in text.strip().split(";"):
            segment = segment.strip()
            if not segment:
                continue
            key, sep, value = segment.partition("=")
            key = key.strip().upper()
            value = value.strip()
            if not sep or not value or key not in ("FREQ", "INTERVAL") or key in parts:
                return None
            parts[key] = value

        if "FREQ" not in parts:
            return None
        try:
            frequency = Frequency(parts["FREQ"].upper())
        except ValueError:
            return None

        raw_interval = parts.get("INTERVAL", "1")
        if not raw_interval.isdigit():
            return None
        interval = int(raw_interval)
        if interval < 1:
            return None

        return cls(frequency=frequency, interval=interval)

    def to_rule_string(self) -> str:
        return f"FREQ={self.frequency.value};INTERVAL={self.interval}"

    def advance(self, reference: D) -> D:
        if self.frequency is Frequency.DAILY:
            return reference + timedelta(days=self.interval)
        if self.frequency is Frequency.WEEKLY:
            return reference + timedelta(weeks=self.interval)
        return add_months(reference, self.interval)


def next_occurrence(reference: D, rule: Union[RecurrenceRule, str, None]) -> Optional[D]:
    """
    The occurrence following ``reference``, or ``None`` for an unusable rule.

    >>> next_occurrence(date(2025, 3, 3), "FREQ=WEEKLY;INTERVAL=2")
    datetime.date(2025, 3, 17)
    """
    parsed = RecurrenceRule.parse(rule) if isinstance(rule, str) or rule is None else rule
    if parsed is None:
        return None
    return parsed.advance(reference)


class RecurrenceExpander(BaseService):
    """Materializes recurring lesson occurrences and keeps the chain going."""

    def __init__(
        self,
        db: Session,
        queue: Optional["AutomationQueue"] = None,
        config: Optional[Settings] = None,
        conflict_checker: Optional[ConflictChecker] = None,
    ):
        super().__init__(db)
        self.settings = config or default_settings
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        if queue is None:
            from .automation_queue import AutomationQueue

            queue = AutomationQueue(db, config=self.settings)
        self.queue = queue

    @BaseService.measure_operation("materialize_next")
    def materialize_next(self, tenant_id: str, template_lesson_id: str, next_start: datetime) -> Optional[Lesson]:
        """
        Create the occurrence of ``template_lesson_id`` starting at ``next_start``.

        Returns ``None`` when the template is gone, no longer recurring,
        cancelled, or when ``next_start`` lies past the series end. When
        the chain already holds a lesson at ``next_start`` that lesson is
        returned unchanged, so a retried job never duplicates it.

        Does not commit.
        """
        next_start = ensure_utc(next_start)
        template = self.lesson_repository.get_by_id(tenant_id, template_lesson_id)
        if template is None:
            self.logger.info(f"Recurrence template {template_lesson_id} no longer exists; skipping")
            return None
        if not template.is_recurring or template.status == LessonStatus.CANCELLED.value:
            self.logger.info(f"Recurrence template {template_lesson_id} is inactive; skipping")
            return None
        if template.recurrence_end is not None and next_start > ensure_utc(template.recurrence_end):
            self.logger.info(f"Occurrence {next_start.isoformat()} is past the end of series {template.id}")
            return None

        root_id = template.chain_root_id
        existing = self.lesson_repository.find_chain_occurrence(tenant_id, root_id, next_start)
        if existing is not None:
            self.logger.info(f"Occurrence {next_start.isoformat()} of series {root_id} already exists")
            return existing

        duration = ensure_utc(template.end_time) - ensure_utc(template.start_time)
        next_end = next_start + duration

        conflicts = self.conflict_checker.detect_conflicts(
            tenant_id,
            next_start,
            next_end,
            teacher_id=template.teacher_id,
            room=template.room,
        )
        if conflicts:
            self.logger.warning(
                f"Materializing series {root_id} at {next_start.isoformat()} despite "
                f"{len(conflicts)} conflicts: {[conflict.id for conflict in conflicts]}"
            )

        lesson = self.lesson_repository.create(
            tenant_id=tenant_id,
            class_id=template.class_id,
            teacher_id=template.teacher_id,
            title=template.title,
            description=template.description,
            room=template.room,
            start_time=next_start,
            end_time=next_end,
            status=LessonStatus.SCHEDULED.value,
            is_recurring=True,
            recurrence_rule=template.recurrence_rule,
            recurrence_end=template.recurrence_end,
            parent_lesson_id=root_id,
        )
        self.logger.info(f"Materialized lesson {lesson.id} of series {root_id} at {next_start.isoformat()}")
        return lesson

    def schedule_following(
        self,
        template: Lesson,
        occurrence_start: datetime,
        *,
        pattern_end: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Optional["EnqueueResult"]:
        """
        Enqueue the recurrence job for the occurrence after ``occurrence_start``.

        The job is scheduled ``recurrence_lead_days`` ahead of the lesson
        it will create. Nothing is enqueued when the rule is unusable or
        the next occurrence falls after the series end, which ends the
        chain.
        """
        now = now or utcnow()
        following = next_occurrence(ensure_utc(occurrence_start), template.recurrence_rule)
        if following is None:
            self.logger.warning(
                f"Series {template.chain_root_id} has an invalid rule {template.recurrence_rule!r}; chain stops"
            )
            return None

        end = pattern_end or template.recurrence_end
        if end is not None and following > ensure_utc(end):
            self.logger.info(f"Series {template.chain_root_id} ends before {following.isoformat()}; chain stops")
            return None

        trigger = following - timedelta(days=self.settings.recurrence_lead_days)
        delay_ms = max(int((trigger - now).total_seconds() * 1000), 0)
        job = RecurringLessonJob(
            tenant_id=template.tenant_id,
            template_lesson_id=template.chain_root_id,
            next_date=following,
            pattern_end=ensure_utc(end) if end is not None else None,
        )
        return self.queue.enqueue(job, delay_ms=delay_ms, now=now)

    def start_chain(self, lesson: Lesson, now: Optional[datetime] = None) -> Optional["EnqueueResult"]:
        """Kick off a freshly created recurring lesson's chain."""
        if not lesson.is_recurring:
            return None
        return self.schedule_following(lesson, lesson.start_time, now=now)
