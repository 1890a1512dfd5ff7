# coursehub/routes/v1/automation.py
"""
Automation routes - API v1

Administrative entry points to the automation engine under
/api/v1/automation. Actions only enqueue jobs; the worker pool runs them.

Endpoints:
    POST /       → Run one automation action
    GET /        → Engine configuration and job counts by state
    GET /jobs    → List jobs, optionally filtered by state or kind

The global scans (run-daily-automation, setup-daily-reminders,
setup-payment-reminders) iterate every tenant and are reserved for
SUPERADMIN; every other action is scoped to the caller's tenant.
"""

from dataclasses import asdict
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import Principal, get_automation_service, require_admin
from ...core.enums import JobKind, JobState, RoleName
from ...core.exceptions import DomainException, ForbiddenException
from ...schemas.automation import (
    AutomationActionRequest,
    AutomationActionResponse,
    AutomationJobListResponse,
    AutomationJobResponse,
    AutomationStatusResponse,
)
from ...services.automation_service import AutomationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["automation-v1"])

GLOBAL_ACTIONS = frozenset({"run-daily-automation", "setup-daily-reminders", "setup-payment-reminders"})


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _dispatch(
    request: AutomationActionRequest, principal: Principal, service: AutomationService
) -> AutomationActionResponse:
    action = request.action
    tenant_id = principal.tenant_id

    if action in GLOBAL_ACTIONS and principal.role is not RoleName.SUPERADMIN:
        raise ForbiddenException(f"{action} requires SUPERADMIN", code="SUPERADMIN_REQUIRED")

    if action == "run-daily-automation":
        daily = service.run_daily()
        return AutomationActionResponse(action=action, success=not daily.errors, summary=asdict(daily))
    if action == "setup-daily-reminders":
        return AutomationActionResponse(action=action, summary=asdict(service.setup_daily_reminders()))
    if action == "setup-payment-reminders":
        return AutomationActionResponse(action=action, summary=asdict(service.setup_payment_reminders()))
    if action == "schedule-attendance-reminder":
        result = service.schedule_attendance_reminder(tenant_id, request.lesson_id, request.reminder_time)
    elif action == "schedule-payment-reminder":
        result = service.schedule_payment_reminder(tenant_id, request.payment_id, request.reminder_type)
    elif action == "check-class-capacity":
        capacity = service.check_class_capacity(tenant_id, request.class_id)
        return AutomationActionResponse(action=action, result=capacity.value if capacity else None)
    elif action == "process-auto-enrollment":
        result = service.process_auto_enrollment(tenant_id, request.class_id, request.waitlist_entry_id)
    else:
        result = service.schedule_recurring_lesson(tenant_id, request.template_lesson_id, request.next_date)
    return AutomationActionResponse(action=action, result=result.value)


@router.post("", response_model=AutomationActionResponse)
def run_automation_action(
    payload: AutomationActionRequest,
    principal: Principal = Depends(require_admin),
    service: AutomationService = Depends(get_automation_service),
) -> AutomationActionResponse:
    try:
        response = _dispatch(payload, principal, service)
    except DomainException as e:
        handle_domain_exception(e)
    logger.info(f"Automation action {payload.action} by {principal.user_id}: {response.result or 'done'}")
    return response


@router.get("", response_model=AutomationStatusResponse)
def get_automation_status(
    principal: Principal = Depends(require_admin),
    service: AutomationService = Depends(get_automation_service),
) -> AutomationStatusResponse:
    return AutomationStatusResponse(**service.get_status(principal.tenant_id))


@router.get("/jobs", response_model=AutomationJobListResponse)
def list_automation_jobs(
    state: Optional[JobState] = Query(None),
    kind: Optional[JobKind] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(require_admin),
    service: AutomationService = Depends(get_automation_service),
) -> AutomationJobListResponse:
    jobs = service.list_jobs(
        tenant_id=principal.tenant_id,
        state=state.value if state else None,
        kind=kind.value if kind else None,
        limit=limit,
    )
    items = [AutomationJobResponse.model_validate(job) for job in jobs]
    return AutomationJobListResponse(jobs=items, total=len(items))
