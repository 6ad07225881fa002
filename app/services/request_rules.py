"""Pure guards for the visit request lifecycle.

Every check here is a function of the caller and the current request state.
Nothing touches the database, so the rules can be exercised without a store.
"""
from dataclasses import dataclass, field
from typing import Any, Mapping

from app.core.exceptions import Conflict, Forbidden
from app.db.models import RequestStatus

TERMINAL_STATUSES = frozenset(
    {
        RequestStatus.completed,
        RequestStatus.declined,
        RequestStatus.cancelled,
        RequestStatus.expired,
    }
)

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.pending: frozenset(
        {
            RequestStatus.pending,
            RequestStatus.accepted,
            RequestStatus.declined,
            RequestStatus.cancelled,
            RequestStatus.expired,
        }
    ),
    RequestStatus.accepted: frozenset({RequestStatus.in_progress, RequestStatus.cancelled}),
    RequestStatus.in_progress: frozenset({RequestStatus.completed, RequestStatus.cancelled}),
}

CANCELLABLE_STATUSES = frozenset({RequestStatus.pending, RequestStatus.accepted, RequestStatus.in_progress})

MANAGE_REQUESTS = "manageRequests"


@dataclass(frozen=True)
class Caller:
    kind: str
    id: str
    role: str | None = None
    permissions: Mapping[str, bool] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def member(cls, member_id: str) -> "Caller":
        return cls(kind="member", id=member_id)

    @classmethod
    def admin(cls, admin_id: str, role: str = "admin", permissions: Mapping[str, bool] | None = None) -> "Caller":
        return cls(kind="admin", id=admin_id, role=role, permissions=dict(permissions or {}))

    @property
    def is_admin(self) -> bool:
        return self.kind == "admin"

    @property
    def is_member(self) -> bool:
        return self.kind == "member"

    def has_permission(self, name: str) -> bool:
        if not self.is_admin:
            return False
        return self.role == "super_admin" or bool(self.permissions.get(name))


def _status(request: Any) -> RequestStatus:
    return RequestStatus(request.status)


def can_transition(current: RequestStatus | str, target: RequestStatus | str) -> bool:
    return RequestStatus(target) in ALLOWED_TRANSITIONS.get(RequestStatus(current), frozenset())


def ensure_transition(request: Any, target: RequestStatus) -> None:
    current = _status(request)
    if not can_transition(current, target):
        raise Conflict(f"Cannot move request from {current.value} to {target.value}")


def owns(caller: Caller, request: Any) -> bool:
    return caller.is_member and caller.id == request.member_id


def can_view(caller: Caller, request: Any) -> bool:
    return caller.is_admin or owns(caller, request)


def can_respond(caller: Caller, request: Any) -> bool:
    return owns(caller, request)


def can_cancel(caller: Caller, request: Any) -> bool:
    return caller.is_admin or owns(caller, request)


def can_force_accept(caller: Caller) -> bool:
    return caller.has_permission(MANAGE_REQUESTS)


def can_mark_entry(caller: Caller) -> bool:
    # Security staff are admin accounts with the "security" role.
    return caller.is_admin


def ensure_can_respond(caller: Caller, request: Any) -> None:
    if not can_respond(caller, request):
        raise Forbidden("Access denied")
    if _status(request) != RequestStatus.pending:
        raise Conflict("Request is no longer pending")


def ensure_can_force_accept(caller: Caller, request: Any) -> None:
    if not can_force_accept(caller):
        raise Forbidden(f"Access denied. {MANAGE_REQUESTS} permission required.")
    if _status(request) != RequestStatus.pending:
        raise Conflict("Request is no longer pending")


def ensure_can_enter(caller: Caller, request: Any) -> None:
    if not can_mark_entry(caller):
        raise Forbidden("Access denied. Admin privileges required.")
    if request.entered_at is not None:
        raise Conflict("Visitor has already been marked as entered")
    if _status(request) != RequestStatus.accepted:
        raise Conflict("Request must be accepted before marking entry")


def ensure_can_exit(caller: Caller, request: Any) -> None:
    if not can_mark_entry(caller):
        raise Forbidden("Access denied. Admin privileges required.")
    if request.entered_at is None:
        raise Conflict("Visitor must be marked as entered before marking exit")
    if request.exited_at is not None:
        raise Conflict("Visitor has already been marked as exited")
    ensure_transition(request, RequestStatus.completed)


def ensure_can_cancel(caller: Caller, request: Any) -> None:
    if not can_cancel(caller, request):
        raise Forbidden("Access denied")
    if _status(request) not in CANCELLABLE_STATUSES:
        raise Conflict("Request cannot be cancelled")


def ensure_can_view(caller: Caller, request: Any) -> None:
    if not can_view(caller, request):
        raise Forbidden("Access denied")
