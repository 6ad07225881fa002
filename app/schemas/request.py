from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.db.models import RequestPurpose, ResponseAction


class VisitRequestCreate(BaseModel):
    visitorId: str = Field(min_length=1)
    companyId: str = Field(min_length=1)
    memberId: str = Field(min_length=1)
    purpose: RequestPurpose
    duration: int = Field(ge=5, le=480)
    purposeDescription: str | None = Field(default=None, max_length=200)
    scheduledTime: datetime | None = None


class MemberResponsePayload(BaseModel):
    action: ResponseAction
    message: str | None = Field(default=None, max_length=500)
    proposedTime: datetime | None = None

    @model_validator(mode="after")
    def require_time_for_reschedule(self) -> "MemberResponsePayload":
        if self.action == ResponseAction.reschedule and self.proposedTime is None:
            raise ValueError("Proposed time is required for rescheduling")
        return self


class EntryPayload(BaseModel):
    entryGate: str | None = Field(default=None, max_length=80)
    securityPersonnel: str | None = Field(default=None, max_length=120)


class ExpirePayload(BaseModel):
    olderThanMinutes: int | None = Field(default=None, ge=1)


class ManualNotificationPayload(BaseModel):
    type: Literal["email", "sms", "both"]
    recipient: str = Field(min_length=1)
    message: str = Field(min_length=1)
    subject: str | None = None
    recipientType: str | None = None
