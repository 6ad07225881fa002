import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import (
    audit_context,
    get_request_lifecycle,
    require_admin,
    require_admin_permission,
)
from app.db.session import get_db
from app.schemas.request import ExpirePayload, ManualNotificationPayload
from app.services.audit_service import (
    AuditContext,
    audit_log_to_dict,
    list_audit_logs,
    record_audit_event,
)
from app.services.notification_service import Notifier, get_notifier
from app.services.request_rules import MANAGE_REQUESTS, Caller
from app.services.request_service import RequestLifecycle
from app.services.request_views import pagination, request_to_dict

router = APIRouter()
logger = logging.getLogger(__name__)


@router.put("/requests/{request_id}/force-accept")
async def force_accept(
    request_id: str,
    caller: Caller = Depends(require_admin_permission(MANAGE_REQUESTS)),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
    context: AuditContext = Depends(audit_context),
):
    outcome = await lifecycle.force_accept(caller, request_id, context=context)
    return {
        "success": True,
        "message": "Request force accepted successfully",
        "data": {"request": request_to_dict(outcome.request), "notifications": outcome.notifications},
    }


@router.post("/requests/expire")
async def expire_requests(
    payload: ExpirePayload | None = None,
    caller: Caller = Depends(require_admin_permission(MANAGE_REQUESTS)),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
    context: AuditContext = Depends(audit_context),
):
    minutes = payload.olderThanMinutes if payload else None
    rows = await lifecycle.expire_stale(caller, older_than_minutes=minutes, context=context)
    return {
        "success": True,
        "message": f"{len(rows)} request(s) expired",
        "data": {"expired": [row.id for row in rows], "count": len(rows)},
    }


@router.post("/notifications/send")
async def send_notification(
    payload: ManualNotificationPayload,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    context: AuditContext = Depends(audit_context),
):
    results = await notifier.send_manual(payload.type, payload.recipient, payload.message, subject=payload.subject)
    record_audit_event(
        db,
        action="manual_notification_sent",
        entity_type="notification",
        entity_id=payload.recipient,
        performed_by=caller.id,
        performed_by_role=caller.kind,
        details={"type": payload.type, "recipientType": payload.recipientType, "results": results},
        context=context,
    )
    delivered = any(result.get("success") for result in results.values())
    logger.info("notification.manual channel=%s delivered=%s", payload.type, delivered)
    return {
        "success": True,
        "message": "Notification sent" if delivered else "Notification could not be delivered",
        "data": {"results": results},
    }


@router.get("/audit-logs")
def audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    action: str | None = Query(default=None),
    entity_type: str | None = Query(default=None, alias="entityType"),
    db: Session = Depends(get_db),
    _: Caller = Depends(require_admin),
):
    rows, total = list_audit_logs(db, page=page, limit=limit, action=action, entity_type=entity_type)
    return {
        "success": True,
        "data": {
            "logs": [audit_log_to_dict(row) for row in rows],
            "pagination": pagination(page, limit, total),
        },
    }
