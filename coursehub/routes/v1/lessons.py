# coursehub/routes/v1/lessons.py
"""
Lessons routes - API v1

Versioned lesson endpoints under /api/v1/lessons.
All business logic delegated to LessonService and ConflictChecker.

Endpoints:
    GET /check-conflicts        → Check a proposed slot for collisions
    POST /                      → Create a lesson (409 on conflict)
    GET /{lesson_id}            → Get a lesson
    PATCH /{lesson_id}/status   → Move a lesson through its lifecycle
"""

from datetime import datetime
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import (
    Principal,
    get_conflict_checker,
    get_current_principal,
    get_lesson_service,
    require_staff,
)
from ...core.exceptions import DomainException
from ...schemas.lesson import (
    ConflictCheckResponse,
    ConflictItem,
    LessonCreate,
    LessonResponse,
    LessonStatusUpdate,
)
from ...services.conflict_checker import ConflictChecker
from ...services.lesson_service import LessonService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["lessons-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get(
    "/check-conflicts",
    response_model=ConflictCheckResponse,
    response_model_by_alias=True,
)
def check_conflicts(
    start_time: datetime = Query(..., description="Proposed start, with timezone offset"),
    end_time: datetime = Query(..., description="Proposed end, with timezone offset"),
    teacher_id: Optional[str] = Query(None),
    room: Optional[str] = Query(None),
    exclude_lesson_id: Optional[str] = Query(None, description="Lesson being edited"),
    principal: Principal = Depends(get_current_principal),
    checker: ConflictChecker = Depends(get_conflict_checker),
) -> ConflictCheckResponse:
    """
    Check whether a slot collides with the teacher's or the room's bookings.

    The answer is advisory; nothing is written.
    """
    try:
        conflicts = checker.detect_conflicts(
            principal.tenant_id,
            start_time,
            end_time,
            teacher_id=teacher_id,
            room=room,
            exclude_lesson_id=exclude_lesson_id,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return ConflictCheckResponse(
        has_conflict=bool(conflicts),
        conflicts=[
            ConflictItem(
                id=conflict.id,
                title=conflict.title,
                start_time=conflict.start_time,
                end_time=conflict.end_time,
                room=conflict.room,
                teacher_name=conflict.teacher_name,
                class_name=conflict.class_name,
                conflict_type=conflict.conflict_type,
            )
            for conflict in conflicts
        ],
    )


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
def create_lesson(
    payload: LessonCreate,
    allow_conflicts: bool = Query(False, description="Create even when the slot collides"),
    principal: Principal = Depends(require_staff),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    try:
        lesson = service.create_lesson(principal.tenant_id, payload, allow_conflicts=allow_conflicts)
    except DomainException as e:
        handle_domain_exception(e)
    return LessonResponse.model_validate(lesson)


@router.get("/{lesson_id}", response_model=LessonResponse)
def get_lesson(
    lesson_id: str,
    principal: Principal = Depends(get_current_principal),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    try:
        lesson = service.get_lesson(principal.tenant_id, lesson_id)
    except DomainException as e:
        handle_domain_exception(e)
    return LessonResponse.model_validate(lesson)


@router.patch("/{lesson_id}/status", response_model=LessonResponse)
def update_lesson_status(
    lesson_id: str,
    payload: LessonStatusUpdate,
    principal: Principal = Depends(require_staff),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    try:
        lesson = service.update_status(principal.tenant_id, lesson_id, payload.status)
    except DomainException as e:
        handle_domain_exception(e)
    return LessonResponse.model_validate(lesson)
