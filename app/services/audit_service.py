import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.db.models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditContext:
    ip_address: str | None = None
    user_agent: str | None = None


def write_audit_log(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: str,
    performed_by: str,
    performed_by_role: str,
    details: dict[str, Any] | None = None,
    context: AuditContext | None = None,
) -> AuditLog:
    context = context or AuditContext()
    row = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        details_json=json.dumps(details or {}, ensure_ascii=True, default=str),
        ip_address=context.ip_address,
        user_agent=(context.user_agent or "")[:255] or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def record_audit_event(db: Session, **kwargs) -> AuditLog | None:
    """Best-effort variant of write_audit_log; failures are logged and dropped."""
    try:
        return write_audit_log(db, **kwargs)
    except Exception:
        db.rollback()
        logger.exception(
            "audit.write failed action=%s entity_id=%s",
            kwargs.get("action"),
            kwargs.get("entity_id"),
        )
        return None


def list_audit_logs(
    db: Session,
    page: int = 1,
    limit: int = 50,
    action: str | None = None,
    entity_type: str | None = None,
) -> tuple[list[AuditLog], int]:
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    total = query.count()
    rows = (
        query.order_by(AuditLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def audit_log_to_dict(row: AuditLog) -> dict[str, Any]:
    return {
        "id": row.id,
        "action": row.action,
        "entityType": row.entity_type,
        "entityId": row.entity_id,
        "performedBy": row.performed_by,
        "performedByRole": row.performed_by_role,
        "details": json.loads(row.details_json or "{}"),
        "ipAddress": row.ip_address,
        "userAgent": row.user_agent,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }
