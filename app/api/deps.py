from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.rate_limit import client_ip
from app.core.security import decode_token
from app.db.models import Admin, Member
from app.db.session import get_db
from app.services.audit_service import AuditContext
from app.services.notification_service import Notifier, get_notifier
from app.services.request_rules import Caller
from app.services.request_service import RequestLifecycle
from app.socket.manager import RealtimeBroadcaster
from app.socket.server import get_broadcaster

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Caller:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    try:
        payload = decode_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token") from exc

    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")

    subject = payload.get("sub")
    kind = payload.get("kind")
    if kind == "admin":
        admin = db.get(Admin, subject)
        if not admin or not admin.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account not found")
        return Caller.admin(admin.id, role=admin.role.value, permissions=admin.permissions)
    if kind == "member":
        member = db.get(Member, subject)
        if not member or not member.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account not found")
        return Caller.member(member.id)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")


def require_member(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_member:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Member account required.")
    return caller


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Admin privileges required.")
    return caller


def require_admin_permission(permission: str):
    def dependency(caller: Caller = Depends(require_admin)) -> Caller:
        if not caller.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. {permission} permission required.",
            )
        return caller

    return dependency


def get_request_lifecycle(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
) -> RequestLifecycle:
    return RequestLifecycle(db, notifier, broadcaster)


def audit_context(request: Request) -> AuditContext:
    return AuditContext(ip_address=client_ip(request), user_agent=request.headers.get("user-agent"))
