import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationFailed
from app.db.models import (
    Company,
    Member,
    RequestPurpose,
    RequestStatus,
    ResponseAction,
    Visitor,
    VisitRequest,
)
from app.services import request_rules as rules
from app.services.audit_service import AuditContext, record_audit_event
from app.services.notification_service import Notifier
from app.services.request_rules import Caller
from app.services.request_views import member_to_dict, visitor_to_dict
from app.socket.manager import RealtimeBroadcaster, company_room, member_room

logger = logging.getLogger(__name__)

ADMIN_OVERRIDE_MESSAGE = "Force accepted by admin"
MIN_DURATION = 5
MAX_DURATION = 480
MAX_DESCRIPTION = 200

RESPONSE_TARGETS = {
    ResponseAction.accept: RequestStatus.accepted,
    ResponseAction.decline: RequestStatus.declined,
    ResponseAction.reschedule: RequestStatus.pending,
}

RESPONSE_AUDIT_ACTIONS = {
    ResponseAction.accept: "visitor_request_accepted",
    ResponseAction.decline: "visitor_request_declined",
    ResponseAction.reschedule: "visitor_request_rescheduled",
}


@dataclass
class TransitionOutcome:
    request: VisitRequest
    notifications: dict[str, Any] = field(default_factory=dict)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class RequestLifecycle:
    """Owns every status change of a visit request.

    Each operation reads the current row, checks its guard, commits the
    mutation and only then runs side effects in a fixed order: notify,
    audit, broadcast. A failing side effect never undoes the commit.
    """

    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        broadcaster: RealtimeBroadcaster,
        clock: Callable[[], datetime] = datetime.utcnow,
        settings: Settings | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.broadcaster = broadcaster
        self.clock = clock
        self.settings = settings or get_settings()

    # lookups

    def get_request(self, request_id: str) -> VisitRequest:
        row = self.db.get(VisitRequest, request_id)
        if not row:
            raise NotFound("Request not found")
        return row

    def get_for_caller(self, caller: Caller, request_id: str) -> VisitRequest:
        row = self.get_request(request_id)
        rules.ensure_can_view(caller, row)
        return row

    def _active_company(self, company_id: str) -> Company:
        company = self.db.get(Company, company_id)
        if not company or not company.is_active:
            raise NotFound("Company not found")
        return company

    def _pending_count_before(self, company_id: str, created_at: datetime) -> int:
        return (
            self.db.query(VisitRequest)
            .filter(
                VisitRequest.company_id == company_id,
                VisitRequest.status == RequestStatus.pending.value,
                VisitRequest.created_at < created_at,
            )
            .count()
        )

    def _find_pending(self, visitor_id: str, member_id: str, company_id: str) -> VisitRequest | None:
        return (
            self.db.query(VisitRequest)
            .filter(
                VisitRequest.visitor_id == visitor_id,
                VisitRequest.member_id == member_id,
                VisitRequest.company_id == company_id,
                VisitRequest.status == RequestStatus.pending.value,
            )
            .first()
        )

    # side effects

    async def _notify(self, label: str, send, *args) -> dict[str, Any]:
        try:
            return await send(*args)
        except Exception as exc:
            logger.warning("notify.%s failed error=%s", label, exc)
            return {"success": False, "error": str(exc)}

    def _audit(self, caller: Caller, action: str, row: VisitRequest, details: dict, context: AuditContext | None):
        record_audit_event(
            self.db,
            action=action,
            entity_type="request",
            entity_id=row.id,
            performed_by=caller.id,
            performed_by_role=caller.kind,
            details=details,
            context=context,
        )

    async def _company_update(self, row: VisitRequest, update_type: str, fields: dict[str, Any]):
        await self.broadcaster.publish(
            "request-update",
            company_room(row.company_id),
            {"type": update_type, "request": {"id": row.id, "status": row.status, **fields}},
        )

    async def _notify_visitor(self, row: VisitRequest, mark_sent: bool = True) -> dict[str, Any]:
        results = await self._notify(
            "visitor", self.notifier.notify_visitor_of_status, row.visitor, row, row.member, row.company
        )
        if mark_sent:
            row.sent_to_visitor = True
            row.last_notification_sent = self.clock()
            self.db.commit()
        return results

    # transitions

    async def create(
        self,
        visitor_id: str,
        company_id: str,
        member_id: str,
        purpose: str,
        duration: int,
        purpose_description: str | None = None,
        scheduled_time: datetime | None = None,
    ) -> TransitionOutcome:
        try:
            purpose = RequestPurpose(purpose).value
        except ValueError as exc:
            raise ValidationFailed("Invalid purpose") from exc
        if not isinstance(duration, int) or not MIN_DURATION <= duration <= MAX_DURATION:
            raise ValidationFailed("Duration must be between 5 and 480 minutes")
        if purpose_description and len(purpose_description) > MAX_DESCRIPTION:
            raise ValidationFailed("Purpose description cannot exceed 200 characters")
        scheduled_time = to_naive_utc(scheduled_time)
        if scheduled_time is not None and scheduled_time <= self.clock():
            raise ValidationFailed("Scheduled time must be in the future")

        visitor = self.db.get(Visitor, visitor_id)
        if not visitor:
            raise NotFound("Visitor not found")
        if visitor.is_blacklisted:
            raise Forbidden("Visitor is blacklisted and cannot make requests")

        company = self._active_company(company_id)

        member = self.db.get(Member, member_id)
        if not member or not member.is_active:
            raise NotFound("Member not found")
        if not member.belongs_to(company.id):
            raise ValidationFailed("Member does not belong to this company")

        if self._find_pending(visitor.id, member.id, company.id):
            raise Conflict("You already have a pending request with this member")

        now = self.clock()
        position = self._pending_count_before(company.id, now) + 1
        row = VisitRequest(
            visitor_id=visitor.id,
            company_id=company.id,
            member_id=member.id,
            purpose=purpose,
            purpose_description=purpose_description,
            duration=duration,
            scheduled_time=scheduled_time,
            status=RequestStatus.pending.value,
            queue_position=position,
            estimated_wait_time=self.settings.QUEUE_MINUTES_PER_VISITOR * (position - 1),
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Lost the race against a concurrent submission for the same triple.
            self.db.rollback()
            raise Conflict("You already have a pending request with this member") from exc
        self.db.refresh(row)
        logger.info(
            "request.create request_id=%s company_id=%s queue_position=%s",
            row.id,
            company.id,
            position,
        )

        notifications = await self._notify(
            "member", self.notifier.notify_member_of_request, member, visitor, row, company
        )
        row.sent_to_member = True
        row.last_notification_sent = self.clock()
        self.db.commit()

        await self.broadcaster.publish(
            "new-request",
            member_room(member.id),
            {
                "request": {
                    "id": row.id,
                    "visitor": visitor_to_dict(visitor, public=True),
                    "purpose": row.purpose,
                    "duration": row.duration,
                    "createdAt": row.created_at.isoformat(),
                }
            },
        )
        await self._company_update(
            row,
            "new",
            {
                "visitor": visitor_to_dict(visitor, public=True),
                "member": member_to_dict(member, public=True),
                "purpose": row.purpose,
            },
        )
        return TransitionOutcome(row, notifications)

    async def respond(
        self,
        caller: Caller,
        request_id: str,
        action: str,
        message: str | None = None,
        proposed_time: datetime | None = None,
        context: AuditContext | None = None,
    ) -> TransitionOutcome:
        try:
            action = ResponseAction(action)
        except ValueError as exc:
            raise ValidationFailed("Invalid action. Must be accept, decline, or reschedule") from exc
        proposed_time = to_naive_utc(proposed_time)
        if action == ResponseAction.reschedule and proposed_time is None:
            raise ValidationFailed("Proposed time is required for rescheduling")

        row = self.get_request(request_id)
        rules.ensure_can_respond(caller, row)
        target = RESPONSE_TARGETS[action]
        rules.ensure_transition(row, target)

        now = self.clock()
        if action == ResponseAction.accept:
            row.allowed_at = now
        elif action == ResponseAction.reschedule:
            row.scheduled_time = proposed_time
        row.status = target.value
        row.response_action = action.value
        row.response_message = message
        row.response_proposed_time = proposed_time
        row.responded_at = now
        self.db.commit()
        self.db.refresh(row)
        logger.info("request.respond request_id=%s action=%s status=%s", row.id, action.value, row.status)

        notifications = await self._notify_visitor(row)
        self._audit(
            caller,
            RESPONSE_AUDIT_ACTIONS[action],
            row,
            {"visitorName": row.visitor.full_name, "action": action.value, "message": message},
            context,
        )
        await self._company_update(row, "status-change", {"memberResponse": row.member_response})
        return TransitionOutcome(row, notifications)

    async def force_accept(
        self, caller: Caller, request_id: str, context: AuditContext | None = None
    ) -> TransitionOutcome:
        row = self.get_request(request_id)
        rules.ensure_can_force_accept(caller, row)
        rules.ensure_transition(row, RequestStatus.accepted)

        now = self.clock()
        row.status = RequestStatus.accepted.value
        row.response_action = ResponseAction.accept.value
        row.response_message = ADMIN_OVERRIDE_MESSAGE
        row.response_proposed_time = None
        row.responded_at = now
        row.allowed_at = now
        self.db.commit()
        self.db.refresh(row)
        logger.info("request.force_accept request_id=%s admin_id=%s", row.id, caller.id)

        notifications = await self._notify_visitor(row)
        self._audit(
            caller,
            "visitor_request_accepted",
            row,
            {"visitorName": row.visitor.full_name, "action": "force-accept", "message": ADMIN_OVERRIDE_MESSAGE},
            context,
        )
        await self._company_update(row, "status-change", {"memberResponse": row.member_response})
        return TransitionOutcome(row, notifications)

    async def mark_entered(
        self,
        caller: Caller,
        request_id: str,
        entry_gate: str | None = None,
        security_personnel: str | None = None,
        context: AuditContext | None = None,
    ) -> TransitionOutcome:
        row = self.get_request(request_id)
        rules.ensure_can_enter(caller, row)
        rules.ensure_transition(row, RequestStatus.in_progress)

        row.entered_at = self.clock()
        row.entry_gate = entry_gate
        row.security_personnel = security_personnel
        row.status = RequestStatus.in_progress.value
        self.db.commit()
        self.db.refresh(row)
        logger.info("request.enter request_id=%s gate=%s", row.id, entry_gate)

        self._audit(
            caller,
            "visitor_entered",
            row,
            {
                "visitorName": row.visitor.full_name,
                "entryGate": entry_gate,
                "securityPersonnel": security_personnel,
            },
            context,
        )
        await self._company_update(row, "entry", {"entryDetails": row.entry_details})
        return TransitionOutcome(row)

    async def mark_exited(
        self, caller: Caller, request_id: str, context: AuditContext | None = None
    ) -> TransitionOutcome:
        row = self.get_request(request_id)
        rules.ensure_can_exit(caller, row)

        now = self.clock()
        row.exited_at = now
        row.status = RequestStatus.completed.value
        visitor = row.visitor
        visitor.visit_count = (visitor.visit_count or 0) + 1
        visitor.last_visit_date = now
        self.db.commit()
        self.db.refresh(row)
        logger.info("request.exit request_id=%s total_duration=%s", row.id, row.total_duration)

        notifications = await self._notify_visitor(row, mark_sent=False)
        self._audit(
            caller,
            "visitor_exited",
            row,
            {"visitorName": visitor.full_name, "duration": row.total_duration},
            context,
        )
        await self._company_update(
            row, "exit", {"entryDetails": row.entry_details, "totalDuration": row.total_duration}
        )
        return TransitionOutcome(row, notifications)

    async def cancel(
        self, caller: Caller, request_id: str, context: AuditContext | None = None
    ) -> TransitionOutcome:
        row = self.get_request(request_id)
        rules.ensure_can_cancel(caller, row)
        rules.ensure_transition(row, RequestStatus.cancelled)

        row.status = RequestStatus.cancelled.value
        self.db.commit()
        self.db.refresh(row)
        logger.info("request.cancel request_id=%s by=%s", row.id, caller.kind)

        self._audit(
            caller,
            "visitor_request_cancelled",
            row,
            {"visitorName": row.visitor.full_name, "cancelledBy": caller.kind},
            context,
        )
        await self._company_update(row, "cancelled", {})
        return TransitionOutcome(row)

    async def expire_stale(
        self,
        caller: Caller,
        older_than_minutes: int | None = None,
        context: AuditContext | None = None,
    ) -> list[VisitRequest]:
        if not rules.can_force_accept(caller):
            raise Forbidden(f"Access denied. {rules.MANAGE_REQUESTS} permission required.")
        minutes = older_than_minutes or self.settings.REQUEST_EXPIRY_MINUTES
        cutoff = self.clock() - timedelta(minutes=minutes)
        rows = (
            self.db.query(VisitRequest)
            .filter(
                VisitRequest.status == RequestStatus.pending.value,
                VisitRequest.created_at < cutoff,
            )
            .order_by(VisitRequest.created_at.asc())
            .all()
        )
        if not rows:
            return []

        for row in rows:
            rules.ensure_transition(row, RequestStatus.expired)
            row.status = RequestStatus.expired.value
        self.db.commit()
        logger.info("request.expire count=%s cutoff=%s", len(rows), cutoff.isoformat())

        for row in rows:
            self._audit(caller, "visitor_request_expired", row, {"olderThanMinutes": minutes}, context)
            await self._company_update(row, "status-change", {"expired": True, "expiredBefore": cutoff.isoformat()})
        return rows

    # live queue

    def queue_view(self, company_id: str) -> dict[str, Any]:
        self._active_company(company_id)
        rows = (
            self.db.query(VisitRequest)
            .filter(
                VisitRequest.company_id == company_id,
                VisitRequest.status == RequestStatus.pending.value,
            )
            .order_by(VisitRequest.priority.desc(), VisitRequest.created_at.asc())
            .all()
        )
        per_visitor = self.settings.QUEUE_MINUTES_PER_VISITOR
        queue = [
            {
                "id": row.id,
                "position": index + 1,
                "queuePosition": row.queue_position,
                "visitor": visitor_to_dict(row.visitor, public=True),
                "member": member_to_dict(row.member, public=True),
                "purpose": row.purpose,
                "duration": row.duration,
                "priority": row.priority,
                "estimatedWaitTime": index * per_visitor,
                "createdAt": row.created_at.isoformat(),
            }
            for index, row in enumerate(rows)
        ]
        return {
            "queue": queue,
            "totalPending": len(rows),
            "estimatedWaitTime": len(rows) * per_visitor,
        }

    # listings

    def _page(self, query, page: int, limit: int) -> tuple[list[VisitRequest], int]:
        total = query.count()
        rows = (
            query.order_by(VisitRequest.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def list_for_member(
        self, caller: Caller, member_id: str, page: int = 1, limit: int = 10, status: str | None = None
    ) -> tuple[list[VisitRequest], int]:
        if not (caller.is_member and caller.id == member_id):
            raise Forbidden("Access denied")
        query = self.db.query(VisitRequest).filter(VisitRequest.member_id == member_id)
        if status:
            query = query.filter(VisitRequest.status == status)
        return self._page(query, page, limit)

    def list_for_company(
        self, company_id: str, page: int = 1, limit: int = 10, status: str | None = None
    ) -> tuple[list[VisitRequest], int]:
        query = self.db.query(VisitRequest).filter(VisitRequest.company_id == company_id)
        if status:
            query = query.filter(VisitRequest.status == status)
        return self._page(query, page, limit)

    def list_for_visitor(self, visitor_id: str) -> list[VisitRequest]:
        return (
            self.db.query(VisitRequest)
            .filter(VisitRequest.visitor_id == visitor_id)
            .order_by(VisitRequest.created_at.desc())
            .all()
        )

    def list_recent(self, page: int = 1, limit: int = 20) -> tuple[list[VisitRequest], int]:
        return self._page(self.db.query(VisitRequest), page, limit)
