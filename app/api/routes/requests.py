from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import (
    audit_context,
    get_current_caller,
    get_request_lifecycle,
    require_admin,
    require_member,
)
from app.core.exceptions import NotFound
from app.core.rate_limit import limit_request_creation
from app.db.models import RequestStatus, Visitor
from app.db.session import get_db
from app.schemas.request import EntryPayload, MemberResponsePayload, VisitRequestCreate
from app.services.audit_service import AuditContext
from app.services.request_rules import Caller
from app.services.request_service import RequestLifecycle
from app.services.request_views import (
    created_request_summary,
    pagination,
    request_to_dict,
)

router = APIRouter()

RESPONSE_MESSAGES = {
    "accept": "Request accepted successfully",
    "decline": "Request declined successfully",
    "reschedule": "Request rescheduled successfully",
}


def _page(rows, page: int, limit: int, total: int):
    return {
        "requests": [request_to_dict(row) for row in rows],
        "pagination": pagination(page, limit, total),
    }


# Unauthenticated surface used by the visitor kiosk.

@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(limit_request_creation)])
async def create_request(
    payload: VisitRequestCreate,
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    outcome = await lifecycle.create(
        visitor_id=payload.visitorId,
        company_id=payload.companyId,
        member_id=payload.memberId,
        purpose=payload.purpose.value,
        duration=payload.duration,
        purpose_description=payload.purposeDescription,
        scheduled_time=payload.scheduledTime,
    )
    return {
        "success": True,
        "message": "Visitor request submitted successfully",
        "data": {
            "request": created_request_summary(outcome.request),
            "notifications": outcome.notifications,
        },
    }


@router.get("/public")
def public_requests(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    rows, total = lifecycle.list_recent(page=page, limit=limit)
    return {
        "success": True,
        "data": {
            "requests": [request_to_dict(row, public=True) for row in rows],
            "pagination": pagination(page, limit, total),
        },
    }


@router.get("/public/visitor/{visitor_id}")
def visitor_requests(
    visitor_id: str,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    if not db.get(Visitor, visitor_id):
        raise NotFound("Visitor not found")
    rows = lifecycle.list_for_visitor(visitor_id)
    return {"success": True, "data": {"requests": [request_to_dict(row, public=True) for row in rows]}}


@router.get("/public/{request_id}")
def public_request(request_id: str, lifecycle: RequestLifecycle = Depends(get_request_lifecycle)):
    row = lifecycle.get_request(request_id)
    return {"success": True, "data": {"request": request_to_dict(row, public=True)}}


@router.get("/queue/{company_id}")
def company_queue(company_id: str, lifecycle: RequestLifecycle = Depends(get_request_lifecycle)):
    return {"success": True, "data": lifecycle.queue_view(company_id)}


# Authenticated surface.

@router.get("/member/{member_id}")
def member_requests(
    member_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    caller: Caller = Depends(require_member),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    rows, total = lifecycle.list_for_member(
        caller, member_id, page=page, limit=limit, status=status_filter.value if status_filter else None
    )
    return {"success": True, "data": _page(rows, page, limit, total)}


@router.get("/company/{company_id}")
def company_requests(
    company_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    _: Caller = Depends(require_admin),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    rows, total = lifecycle.list_for_company(
        company_id, page=page, limit=limit, status=status_filter.value if status_filter else None
    )
    return {"success": True, "data": _page(rows, page, limit, total)}


@router.get("/{request_id}")
def get_request(
    request_id: str,
    caller: Caller = Depends(get_current_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    row = lifecycle.get_for_caller(caller, request_id)
    return {"success": True, "data": {"request": request_to_dict(row)}}


@router.put("/{request_id}/status")
async def respond_to_request(
    request_id: str,
    payload: MemberResponsePayload,
    caller: Caller = Depends(require_member),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
    context: AuditContext = Depends(audit_context),
):
    outcome = await lifecycle.respond(
        caller,
        request_id,
        action=payload.action.value,
        message=payload.message,
        proposed_time=payload.proposedTime,
        context=context,
    )
    return {
        "success": True,
        "message": RESPONSE_MESSAGES[payload.action.value],
        "data": {"request": request_to_dict(outcome.request), "notifications": outcome.notifications},
    }


@router.put("/{request_id}/enter")
async def mark_entered(
    request_id: str,
    payload: EntryPayload | None = None,
    caller: Caller = Depends(require_admin),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
    context: AuditContext = Depends(audit_context),
):
    payload = payload or EntryPayload()
    outcome = await lifecycle.mark_entered(
        caller,
        request_id,
        entry_gate=payload.entryGate,
        security_personnel=payload.securityPersonnel,
        context=context,
    )
    return {
        "success": True,
        "message": "Visitor marked as entered",
        "data": {"request": request_to_dict(outcome.request)},
    }


@router.put("/{request_id}/exit")
async def mark_exited(
    request_id: str,
    caller: Caller = Depends(require_admin),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
    context: AuditContext = Depends(audit_context),
):
    outcome = await lifecycle.mark_exited(caller, request_id, context=context)
    return {
        "success": True,
        "message": "Visitor marked as exited",
        "data": {"request": request_to_dict(outcome.request), "notifications": outcome.notifications},
    }


@router.put("/{request_id}/cancel")
async def cancel_request(
    request_id: str,
    caller: Caller = Depends(get_current_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
    context: AuditContext = Depends(audit_context),
):
    outcome = await lifecycle.cancel(caller, request_id, context=context)
    return {
        "success": True,
        "message": "Request cancelled successfully",
        "data": {"request": request_to_dict(outcome.request)},
    }
