import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class RequestStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    in_progress = "in-progress"
    completed = "completed"
    cancelled = "cancelled"
    expired = "expired"


class RequestPurpose(str, Enum):
    interview = "interview"
    casual = "casual"
    delivery = "delivery"
    meeting = "meeting"
    other = "other"


class ResponseAction(str, Enum):
    accept = "accept"
    decline = "decline"
    reschedule = "reschedule"


PENDING_ONLY = text("status = 'pending'")


class VisitRequest(Base):
    __tablename__ = "visit_requests"
    __table_args__ = (
        # At most one pending request per (visitor, member, company).
        Index(
            "uq_visit_requests_pending_triple",
            "visitor_id",
            "member_id",
            "company_id",
            unique=True,
            sqlite_where=PENDING_ONLY,
            postgresql_where=PENDING_ONLY,
        ),
        Index("ix_visit_requests_company_status", "company_id", "status"),
        Index("ix_visit_requests_member_status", "member_id", "status"),
        Index("ix_visit_requests_queue", "status", "priority", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    visitor_id: Mapped[str] = mapped_column(String(36), ForeignKey("visitors.id"), nullable=False, index=True)
    company_id: Mapped[str] = mapped_column(String(36), ForeignKey("companies.id"), nullable=False)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id"), nullable=False)

    purpose: Mapped[str] = mapped_column(String(20), nullable=False, default=RequestPurpose.casual.value)
    purpose_description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    scheduled_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RequestStatus.pending.value)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    queue_position: Mapped[int] = mapped_column(Integer, default=0)
    estimated_wait_time: Mapped[int] = mapped_column(Integer, default=0)
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False)

    response_action: Mapped[str | None] = mapped_column(String(20), nullable=True)
    response_message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    response_proposed_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    allowed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    entered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    exited_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    entry_gate: Mapped[str | None] = mapped_column(String(80), nullable=True)
    security_personnel: Mapped[str | None] = mapped_column(String(120), nullable=True)

    sent_to_member: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_to_visitor: Mapped[bool] = mapped_column(Boolean, default=False)
    last_notification_sent: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    tags: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    visitor = relationship("Visitor")
    company = relationship("Company")
    member = relationship("Member")

    @property
    def total_duration(self) -> int | None:
        if self.entered_at and self.exited_at:
            return round((self.exited_at - self.entered_at).total_seconds() / 60)
        return None

    @property
    def member_response(self) -> dict | None:
        if not self.response_action:
            return None
        return {
            "action": self.response_action,
            "message": self.response_message,
            "proposedTime": self.response_proposed_time.isoformat() if self.response_proposed_time else None,
            "respondedAt": self.responded_at.isoformat() if self.responded_at else None,
        }

    @property
    def entry_details(self) -> dict:
        return {
            "allowedAt": self.allowed_at.isoformat() if self.allowed_at else None,
            "enteredAt": self.entered_at.isoformat() if self.entered_at else None,
            "exitedAt": self.exited_at.isoformat() if self.exited_at else None,
            "entryGate": self.entry_gate,
            "securityPersonnel": self.security_personnel,
        }
