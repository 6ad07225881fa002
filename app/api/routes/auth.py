from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import audit_context, get_current_caller
from app.core.exceptions import NotFound
from app.db.models import Admin, Member
from app.db.session import get_db
from app.schemas.auth import LoginRequest
from app.services import auth_service
from app.services.audit_service import AuditContext
from app.services.request_rules import Caller

router = APIRouter()


@router.post("/admin/login")
def admin_login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    context: AuditContext = Depends(audit_context),
):
    data = auth_service.admin_login(db, payload.email, payload.password, context=context)
    return {"success": True, "message": "Login successful", "data": data.model_dump()}


@router.post("/member/login")
def member_login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    context: AuditContext = Depends(audit_context),
):
    data = auth_service.member_login(db, payload.email, payload.password, context=context)
    return {"success": True, "message": "Login successful", "data": data.model_dump()}


@router.get("/me")
def me(caller: Caller = Depends(get_current_caller), db: Session = Depends(get_db)):
    if caller.is_admin:
        admin = db.get(Admin, caller.id)
        if not admin:
            raise NotFound("Account not found")
        user = auth_service.admin_user(admin)
    else:
        member = db.get(Member, caller.id)
        if not member:
            raise NotFound("Account not found")
        user = auth_service.member_user(member)
    return {"success": True, "data": user.model_dump()}
