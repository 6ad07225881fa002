from app.db.models.admin import Admin, AdminRole
from app.db.models.audit import AuditLog
from app.db.models.company import Company, MemberCompany
from app.db.models.member import Member
from app.db.models.request import RequestPurpose, RequestStatus, ResponseAction, VisitRequest
from app.db.models.visitor import Visitor

__all__ = [
    "Admin",
    "AdminRole",
    "AuditLog",
    "Company",
    "Member",
    "MemberCompany",
    "RequestPurpose",
    "RequestStatus",
    "ResponseAction",
    "VisitRequest",
    "Visitor",
]
