"""Schemas describing release sweep outcomes."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class SweepError(BaseModel):
    owner_id: UUID
    message: str


class SweepReport(BaseModel):
    started_at: datetime
    finished_at: datetime | None = None
    owners_processed: int = 0
    owners_failed: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    grants_released: int = 0
    errors: list[SweepError] = Field(default_factory=list)
