import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.exceptions import AppException
from app.core.security import create_access_token, verify_password
from app.db.models import Admin, Member
from app.schemas.auth import AuthResponse, AuthUser
from app.services.audit_service import AuditContext, record_audit_event

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def admin_user(admin: Admin) -> AuthUser:
    return AuthUser(
        id=admin.id,
        fullName=admin.full_name,
        email=admin.email,
        kind="admin",
        role=admin.role.value,
        permissions=dict(admin.permissions or {}),
    )


def member_user(member: Member) -> AuthUser:
    return AuthUser(id=member.id, fullName=member.full_name, email=member.email, kind="member")


def _issue(db: Session, account, kind: str, user: AuthUser, context: AuditContext | None) -> AuthResponse:
    account.last_login = datetime.utcnow()
    db.commit()
    record_audit_event(
        db,
        action=f"{kind}_login",
        entity_type=kind,
        entity_id=account.id,
        performed_by=account.id,
        performed_by_role=kind,
        context=context,
    )
    logger.info("auth.login kind=%s account_id=%s", kind, account.id)
    return AuthResponse(token=create_access_token(account.id, kind), user=user)


def admin_login(db: Session, email: str, password: str, context: AuditContext | None = None) -> AuthResponse:
    admin = db.query(Admin).filter(Admin.email == _normalize_email(email)).first()
    if not admin or not verify_password(password, admin.password_hash):
        raise AppException("Invalid credentials", status_code=401)
    if not admin.is_active:
        raise AppException("Account is deactivated", status_code=401)
    return _issue(db, admin, "admin", admin_user(admin), context)


def member_login(db: Session, email: str, password: str, context: AuditContext | None = None) -> AuthResponse:
    member = db.query(Member).filter(Member.email == _normalize_email(email)).first()
    if not member or not verify_password(password, member.password_hash):
        raise AppException("Invalid credentials", status_code=401)
    if not member.is_active:
        raise AppException("Account is deactivated", status_code=401)
    return _issue(db, member, "member", member_user(member), context)
