"""Pydantic schemas consolidating backend API contracts."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active

from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .activity import ActivityStatusOut, CheckInFrequencyUpdate, OwnerOut
from .assets import (
    AssetCreate,
    AssetOut,
    AssetSummary,
    Beneficiary,
    BeneficiaryDesignation,
    BeneficiaryUpdate,
    ConflictCheckOut,
    ConflictCheckRequest,
    ConflictCreate,
    ConflictFinding,
    ConflictRecordOut,
    ConflictResolve,
    ConflictStatusUpdate,
    ConflictSummary,
)
from .sweep import SweepError, SweepReport
from .trustees import TrusteeCreate, TrusteeOut, TrusteeUpdate, TrusteeVerification
from .vault import (
    AccessCheckOut,
    AccessGrantCreate,
    AccessGrantOut,
    ProtectedItemCreate,
    ProtectedItemOut,
    ProtectedItemUpdate,
    PublicToggle,
)


class AuditLogOut(BaseModel):
    id: UUID
    owner_id: UUID
    action: str
    target_type: str | None = None
    target_id: UUID | None = None
    details: Dict[str, Any] = {}
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AuditReportItem(BaseModel):
    action: str
    count: int
