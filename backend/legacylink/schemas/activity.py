"""Pydantic schemas for owner activity and check-in APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class OwnerOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    last_check_in: datetime
    check_in_frequency_days: int
    model_config = ConfigDict(from_attributes=True)


class CheckInFrequencyUpdate(BaseModel):
    frequency: int = Field(..., ge=1, description="Days between required check-ins")


class ActivityStatusOut(BaseModel):
    owner_id: UUID
    status: Literal["active", "overdue"]
    last_check_in: datetime
    check_in_frequency_days: int
    days_since_check_in: int
    evaluated_at: datetime
