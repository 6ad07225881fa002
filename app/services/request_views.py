import math
from datetime import datetime
from typing import Any

from app.db.models import Company, Member, Visitor, VisitRequest


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def visitor_to_dict(visitor: Visitor | None, public: bool = False) -> dict[str, Any] | None:
    if visitor is None:
        return None
    data = {
        "id": visitor.id,
        "firstName": visitor.first_name,
        "lastName": visitor.last_name,
        "fullName": visitor.full_name,
        "phone": visitor.phone,
        "photo": visitor.photo,
    }
    if not public:
        data["email"] = visitor.email
    return data


def member_to_dict(member: Member | None, public: bool = False) -> dict[str, Any] | None:
    if member is None:
        return None
    data = {
        "id": member.id,
        "firstName": member.first_name,
        "lastName": member.last_name,
        "fullName": member.full_name,
        "department": member.department,
        "position": member.position,
    }
    if not public:
        data.update({"employeeId": member.employee_id, "email": member.email, "phone": member.phone})
    return data


def company_to_dict(company: Company | None) -> dict[str, Any] | None:
    if company is None:
        return None
    return {
        "id": company.id,
        "name": company.name,
        "location": company.location,
        "contactPhone": company.contact_phone,
    }


def request_to_dict(row: VisitRequest, public: bool = False) -> dict[str, Any]:
    data = {
        "id": row.id,
        "visitor": visitor_to_dict(row.visitor, public=public),
        "company": company_to_dict(row.company),
        "member": member_to_dict(row.member, public=public),
        "purpose": row.purpose,
        "purposeDescription": row.purpose_description,
        "duration": row.duration,
        "scheduledTime": _iso(row.scheduled_time),
        "status": row.status,
        "priority": row.priority,
        "queuePosition": row.queue_position,
        "estimatedWaitTime": row.estimated_wait_time,
        "memberResponse": row.member_response,
        "entryDetails": row.entry_details,
        "totalDuration": row.total_duration,
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
    }
    if not public:
        data.update(
            {
                "isUrgent": bool(row.is_urgent),
                "notifications": {
                    "sentToMember": bool(row.sent_to_member),
                    "sentToVisitor": bool(row.sent_to_visitor),
                    "lastNotificationSent": _iso(row.last_notification_sent),
                },
                "tags": list(row.tags or []),
                "notes": row.notes,
            }
        )
    return data


def created_request_summary(row: VisitRequest) -> dict[str, Any]:
    return {
        "id": row.id,
        "status": row.status,
        "queuePosition": row.queue_position,
        "estimatedWaitTime": row.estimated_wait_time,
        "createdAt": _iso(row.created_at),
    }


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "current": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "limit": limit,
    }
