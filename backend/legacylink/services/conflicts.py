"""Beneficiary conflict detection and conflict record lifecycle."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, Sequence
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session, joinedload

from .. import audit, models, schemas
from ..clock import ensure_utc
from .errors import InvalidState, NotFound

# purpose: compare asset beneficiary designations with will beneficiaries and track findings
# inputs: typed beneficiary designations, reference beneficiary lists, owner conflict records
# outputs: ConflictFinding values, persisted ConflictRecord rows, asset conflict_status
# status: active

BENEFICIARY_MISMATCH = "beneficiary_mismatch"

DEFAULT_RECOMMENDATIONS = [
    "Review and update beneficiary designations",
    "Consult with estate planning attorney",
    "Update will to match beneficiary designations",
]

RECENT_WINDOW = timedelta(days=30)

_SEVERITY_RANK = sa.case(
    (models.ConflictRecord.severity == "high", 3),
    (models.ConflictRecord.severity == "medium", 2),
    (models.ConflictRecord.severity == "low", 1),
    else_=0,
)


def _normalise(name: str | None) -> str:
    return (name or "").strip().lower()


def _names(beneficiaries: Iterable[schemas.Beneficiary | str]) -> list[str]:
    names: list[str] = []
    for entry in beneficiaries:
        raw = entry if isinstance(entry, str) else entry.name
        name = _normalise(raw)
        if name and name not in names:
            names.append(name)
    return names


def detect(
    designation: schemas.BeneficiaryDesignation,
    reference_beneficiaries: Sequence[schemas.Beneficiary | str],
) -> list[schemas.ConflictFinding]:
    """Flag asset beneficiaries that the reference list (usually the will) does not name.

    The comparison is one-sided and case-insensitive on name only. An asset
    with no declared beneficiaries yields no findings.
    """

    asset_names = _names((*designation.primary, *designation.contingent))
    if not asset_names:
        return []
    reference_names = _names(reference_beneficiaries)
    reference_set = set(reference_names)
    missing = [name for name in asset_names if name not in reference_set]
    if not missing:
        return []
    return [
        schemas.ConflictFinding(
            conflict_type=BENEFICIARY_MISMATCH,
            message="Asset beneficiaries do not match will beneficiaries",
            asset_beneficiaries=asset_names,
            reference_beneficiaries=reference_names,
            missing_beneficiaries=missing,
        )
    ]


def designation_for(asset: models.Asset) -> schemas.BeneficiaryDesignation:
    return schemas.BeneficiaryDesignation.model_validate(asset.beneficiary_designation or {})


def get_owned_asset(db: Session, owner: models.Owner, asset_id: UUID) -> models.Asset:
    asset = (
        db.query(models.Asset)
        .filter(models.Asset.id == asset_id, models.Asset.owner_id == owner.id)
        .one_or_none()
    )
    if asset is None:
        raise NotFound(f"asset {asset_id} not found")
    return asset


def create_asset(
    db: Session, owner: models.Owner, payload: schemas.AssetCreate, *, now: datetime
) -> models.Asset:
    asset = models.Asset(
        owner_id=owner.id,
        asset_type=payload.asset_type,
        asset_title=payload.asset_title,
        asset_category=payload.asset_category,
        institution_name=payload.institution_name,
        description=payload.description,
        estimated_value=payload.estimated_value,
        beneficiary_designation=payload.beneficiary_designation.model_dump(),
        conflict_status="unchecked",
        created_at=now,
        updated_at=now,
    )
    db.add(asset)
    db.flush()
    return asset


def list_assets(
    db: Session,
    owner: models.Owner,
    *,
    asset_type: str | None = None,
    asset_category: str | None = None,
    conflict_status: str | None = None,
) -> list[models.Asset]:
    query = db.query(models.Asset).filter(models.Asset.owner_id == owner.id)
    if asset_type:
        query = query.filter(models.Asset.asset_type == asset_type)
    if asset_category:
        query = query.filter(models.Asset.asset_category == asset_category)
    if conflict_status:
        query = query.filter(models.Asset.conflict_status == conflict_status)
    return query.order_by(models.Asset.updated_at.desc()).all()


def delete_asset(db: Session, owner: models.Owner, asset_id: UUID, *, now: datetime) -> None:
    """Delete an asset. Its conflict records stay, detached from the asset."""

    asset = get_owned_asset(db, owner, asset_id)
    for record in list(asset.conflicts):
        record.asset = None
    db.delete(asset)
    audit.log_action(db, owner.id, "asset_deleted", "asset", asset_id, now=now)
    db.flush()


def summarize_assets(assets: Sequence[models.Asset]) -> schemas.AssetSummary:
    return schemas.AssetSummary(
        total_assets=len(assets),
        total_value=sum(asset.estimated_value or 0.0 for asset in assets),
        assets_by_type=dict(Counter(asset.asset_type for asset in assets)),
        conflict_count=sum(1 for a in assets if a.conflict_status == "conflict"),
        reviewed_count=sum(1 for a in assets if a.last_reviewed_date is not None),
        with_beneficiaries=sum(1 for a in assets if designation_for(a).names()),
    )


def update_beneficiaries(
    db: Session,
    asset: models.Asset,
    designation: schemas.BeneficiaryDesignation,
    *,
    now: datetime,
) -> models.Asset:
    """Replace the designation; the asset must be re-checked afterwards."""

    asset.beneficiary_designation = designation.model_dump()
    asset.last_reviewed_date = now
    asset.conflict_status = "unchecked"
    db.flush()
    return asset


def check_asset_conflicts(
    db: Session,
    asset: models.Asset,
    reference_beneficiaries: Sequence[schemas.Beneficiary | str],
    *,
    now: datetime,
) -> list[schemas.ConflictFinding]:
    """Run detection for one asset and persist the outcome."""

    findings = detect(designation_for(asset), reference_beneficiaries)
    asset.conflict_status = "conflict" if findings else "no_conflict"
    for finding in findings:
        db.add(
            models.ConflictRecord(
                owner_id=asset.owner_id,
                asset_id=asset.id,
                conflict_type=finding.conflict_type,
                description=finding.message,
                severity="medium",
                status="unresolved",
                recommendations=list(DEFAULT_RECOMMENDATIONS),
                details={
                    "asset_beneficiaries": finding.asset_beneficiaries,
                    "reference_beneficiaries": finding.reference_beneficiaries,
                    "missing_beneficiaries": finding.missing_beneficiaries,
                },
                detected_at=now,
            )
        )
    db.flush()
    return findings


def list_conflicts(
    db: Session, owner: models.Owner, *, unresolved_only: bool = False
) -> list[models.ConflictRecord]:
    query = (
        db.query(models.ConflictRecord)
        .options(joinedload(models.ConflictRecord.asset))
        .filter(models.ConflictRecord.owner_id == owner.id)
    )
    if unresolved_only:
        query = query.filter(models.ConflictRecord.status == "unresolved")
    return query.order_by(
        _SEVERITY_RANK.desc(), models.ConflictRecord.detected_at.desc()
    ).all()


def get_owned_conflict(
    db: Session, owner: models.Owner, conflict_id: UUID
) -> models.ConflictRecord:
    record = (
        db.query(models.ConflictRecord)
        .filter(
            models.ConflictRecord.id == conflict_id,
            models.ConflictRecord.owner_id == owner.id,
        )
        .one_or_none()
    )
    if record is None:
        raise NotFound(f"conflict {conflict_id} not found")
    return record


def create_conflict(
    db: Session, owner: models.Owner, payload: schemas.ConflictCreate, *, now: datetime
) -> models.ConflictRecord:
    """Record a conflict the owner found outside automatic detection."""

    asset = None
    if payload.asset_id is not None:
        asset = get_owned_asset(db, owner, payload.asset_id)
    record = models.ConflictRecord(
        owner_id=owner.id,
        asset=asset,
        conflict_type=payload.conflict_type,
        description=payload.description,
        severity=payload.severity,
        status="unresolved",
        recommendations=list(payload.recommendations),
        details={},
        detected_at=now,
    )
    db.add(record)
    if asset is not None:
        asset.conflict_status = "conflict"
    db.flush()
    audit.log_action(db, owner.id, "conflict_created", "conflict", record.id, now=now)
    return record


def delete_conflict(
    db: Session, owner: models.Owner, conflict_id: UUID, *, now: datetime
) -> None:
    """Drop a record; an asset left with no open records must be re-checked."""

    record = get_owned_conflict(db, owner, conflict_id)
    asset = record.asset
    db.delete(record)
    db.flush()
    if asset is not None and asset.conflict_status == "conflict":
        still_open = (
            db.query(models.ConflictRecord.id)
            .filter(
                models.ConflictRecord.asset_id == asset.id,
                models.ConflictRecord.status != "resolved",
            )
            .first()
        )
        if still_open is None:
            asset.conflict_status = "unchecked"
    audit.log_action(db, owner.id, "conflict_deleted", "conflict", conflict_id, now=now)
    db.flush()


def update_conflict_status(
    db: Session, record: models.ConflictRecord, status: str
) -> models.ConflictRecord:
    if record.status == "resolved":
        raise InvalidState(f"conflict {record.id} is already resolved")
    if status not in {"unresolved", "in_progress"}:
        raise ValueError(f"unsupported conflict status {status!r}")
    record.status = status
    db.flush()
    return record


def resolve_conflict(
    db: Session,
    record: models.ConflictRecord,
    notes: str = "",
    *,
    now: datetime,
) -> models.ConflictRecord:
    """Owner marks a finding resolved; the asset follows once nothing is left open."""

    if record.status == "resolved":
        raise InvalidState(f"conflict {record.id} is already resolved")
    record.status = "resolved"
    record.resolved_at = now
    record.resolution_notes = notes
    db.flush()
    if record.asset is not None:
        still_open = (
            db.query(models.ConflictRecord.id)
            .filter(
                models.ConflictRecord.asset_id == record.asset_id,
                models.ConflictRecord.status != "resolved",
            )
            .first()
        )
        if still_open is None:
            record.asset.conflict_status = "resolved"
    audit.log_action(
        db, record.owner_id, "conflict_resolved", "conflict", record.id, now=now
    )
    db.flush()
    return record


def summarize_conflicts(
    records: Sequence[models.ConflictRecord], *, now: datetime
) -> schemas.ConflictSummary:
    cutoff = ensure_utc(now) - RECENT_WINDOW
    by_type = Counter(record.conflict_type for record in records)
    return schemas.ConflictSummary(
        total_conflicts=len(records),
        unresolved_conflicts=sum(1 for r in records if r.status == "unresolved"),
        high_severity_conflicts=sum(1 for r in records if r.severity == "high"),
        conflicts_by_type=dict(by_type),
        recent_conflicts=sum(
            1
            for r in records
            if r.detected_at is not None and ensure_utc(r.detected_at) > cutoff
        ),
    )
