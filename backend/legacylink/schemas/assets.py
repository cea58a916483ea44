"""Pydantic schemas for assets, beneficiary designations, and conflict records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ConflictStatus = Literal["unchecked", "no_conflict", "conflict", "resolved"]
ConflictRecordStatus = Literal["unresolved", "in_progress", "resolved"]
Severity = Literal["low", "medium", "high"]
AssetType = Literal["financial", "digital", "physical", "real_estate", "business"]


class Beneficiary(BaseModel):
    name: str = Field(..., min_length=1)
    share: Optional[float] = Field(None, ge=0, le=100)


class BeneficiaryDesignation(BaseModel):
    primary: list[Beneficiary] = Field(default_factory=list)
    contingent: list[Beneficiary] = Field(default_factory=list)

    def names(self) -> list[str]:
        return [b.name for b in (*self.primary, *self.contingent)]


class AssetCreate(BaseModel):
    asset_type: AssetType
    asset_title: str = Field(..., min_length=1)
    asset_category: Optional[str] = None
    institution_name: Optional[str] = None
    description: Optional[str] = None
    estimated_value: Optional[float] = None
    beneficiary_designation: BeneficiaryDesignation = Field(
        default_factory=BeneficiaryDesignation
    )


class AssetOut(BaseModel):
    id: UUID
    owner_id: UUID
    asset_type: str
    asset_title: str
    asset_category: Optional[str] = None
    institution_name: Optional[str] = None
    description: Optional[str] = None
    estimated_value: Optional[float] = None
    beneficiary_designation: BeneficiaryDesignation
    conflict_status: ConflictStatus
    last_reviewed_date: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BeneficiaryUpdate(BaseModel):
    beneficiary_designation: BeneficiaryDesignation


class ConflictCheckRequest(BaseModel):
    will_beneficiaries: list[Beneficiary] = Field(default_factory=list)


class ConflictFinding(BaseModel):
    conflict_type: Literal["beneficiary_mismatch"] = "beneficiary_mismatch"
    message: str
    asset_beneficiaries: list[str]
    reference_beneficiaries: list[str]
    missing_beneficiaries: list[str]


class ConflictRecordOut(BaseModel):
    id: UUID
    owner_id: UUID
    asset_id: Optional[UUID] = None
    conflict_type: str
    description: str
    severity: Severity
    status: ConflictRecordStatus
    recommendations: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    detected_at: datetime
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ConflictCheckOut(BaseModel):
    asset: AssetOut
    conflicts: list[ConflictFinding]
    conflict_status: ConflictStatus


class ConflictStatusUpdate(BaseModel):
    status: Literal["unresolved", "in_progress"]


class ConflictResolve(BaseModel):
    resolution_notes: str = ""


class ConflictSummary(BaseModel):
    total_conflicts: int
    unresolved_conflicts: int
    high_severity_conflicts: int
    conflicts_by_type: dict[str, int]
    recent_conflicts: int


class ConflictCreate(BaseModel):
    asset_id: Optional[UUID] = None
    conflict_type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    severity: Severity = "medium"
    recommendations: list[str] = Field(default_factory=list)


class AssetSummary(BaseModel):
    total_assets: int
    total_value: float
    assets_by_type: dict[str, int]
    conflict_count: int
    reviewed_count: int
    with_beneficiaries: int
