"""Pydantic schemas for trustee lifecycle APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

AccessLevel = Literal["all", "documents", "messages", "photos", "custom"]
NotificationTrigger = Literal["inactivity", "manual", "date"]
VerificationStatus = Literal["pending", "verified", "declined"]


class TrusteeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    relationship: Optional[str] = None
    phone_number: Optional[str] = None
    access_level: AccessLevel = "all"
    custom_access: list[str] = Field(default_factory=list)
    notification_trigger: NotificationTrigger = "inactivity"
    trigger_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _validate_trigger(self) -> "TrusteeCreate":
        if self.notification_trigger == "date" and self.trigger_date is None:
            raise ValueError("Date-triggered trustees require a trigger_date")
        if self.notification_trigger != "date" and self.trigger_date is not None:
            raise ValueError("trigger_date is only valid for date-triggered trustees")
        if self.access_level != "custom" and self.custom_access:
            raise ValueError("custom_access is only valid with the custom access level")
        return self


class TrusteeUpdate(BaseModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone_number: Optional[str] = None
    access_level: Optional[AccessLevel] = None
    custom_access: Optional[list[str]] = None


class TrusteeOut(BaseModel):
    id: UUID
    owner_id: UUID
    name: str
    email: EmailStr
    relationship: Optional[str] = Field(None, validation_alias="relationship_label")
    phone_number: Optional[str] = None
    access_level: AccessLevel
    custom_access: list[str] = Field(default_factory=list)
    notification_trigger: NotificationTrigger
    trigger_date: Optional[datetime] = None
    verification_status: VerificationStatus
    verified_at: Optional[datetime] = None
    notified: bool
    notified_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TrusteeVerification(BaseModel):
    verification_code: str = Field(..., min_length=1)
