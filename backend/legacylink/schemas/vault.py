"""Pydantic schemas for protected items and per-trustee access grants."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

AccessTrigger = Literal["immediate", "inactivity", "date", "manual"]
Importance = Literal["low", "medium", "high", "critical"]
ItemType = Literal[
    "document", "message", "photo", "video", "financial", "legal", "personal", "other"
]


class ProtectedItemCreate(BaseModel):
    title: str = Field(..., min_length=1)
    item_type: ItemType
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    content: Optional[str] = None
    is_public: bool = False
    importance: Importance = "medium"


class ProtectedItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    item_type: Optional[ItemType] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    description: Optional[str] = None
    content: Optional[str] = None
    is_public: Optional[bool] = None
    importance: Optional[Importance] = None

    @model_validator(mode="after")
    def _reject_null_required(self) -> "ProtectedItemUpdate":
        for field in ("title", "item_type", "is_public", "importance"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class ProtectedItemOut(BaseModel):
    id: UUID
    owner_id: UUID
    title: str
    item_type: str
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    content: Optional[str] = None
    is_public: bool
    importance: Importance
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PublicToggle(BaseModel):
    is_public: bool


class AccessGrantCreate(BaseModel):
    trustee_id: UUID
    access_trigger: AccessTrigger = "inactivity"
    trigger_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _validate_trigger(self) -> "AccessGrantCreate":
        if self.access_trigger == "date" and self.trigger_date is None:
            raise ValueError("Date-triggered grants require a trigger_date")
        if self.access_trigger != "date" and self.trigger_date is not None:
            raise ValueError("trigger_date is only valid for date-triggered grants")
        return self


class AccessGrantOut(BaseModel):
    id: UUID
    item_id: UUID
    trustee_id: UUID
    access_trigger: AccessTrigger
    trigger_date: Optional[datetime] = None
    access_granted: bool
    access_granted_date: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AccessCheckOut(BaseModel):
    item_id: UUID
    trustee_id: UUID
    can_access: bool
