"""Asset and beneficiary designation routes."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_owner
from ..clock import Clock, get_clock
from ..database import get_db
from ..services import conflicts
from ..services.errors import NotFound

router = APIRouter(prefix="/api/assets", tags=["assets"])


def _asset_or_404(db: Session, owner: models.Owner, asset_id: UUID) -> models.Asset:
    try:
        return conflicts.get_owned_asset(db, owner, asset_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("", status_code=status.HTTP_201_CREATED, response_model=schemas.AssetOut)
def create_asset(
    payload: schemas.AssetCreate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    asset = conflicts.create_asset(db, owner, payload, now=clock())
    db.commit()
    db.refresh(asset)
    return asset


@router.get("", response_model=List[schemas.AssetOut])
def list_assets(
    asset_type: schemas.assets.AssetType | None = None,
    asset_category: str | None = None,
    conflict_status: schemas.assets.ConflictStatus | None = None,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return conflicts.list_assets(
        db,
        owner,
        asset_type=asset_type,
        asset_category=asset_category,
        conflict_status=conflict_status,
    )


@router.get("/summary", response_model=schemas.AssetSummary)
def asset_summary(
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return conflicts.summarize_assets(conflicts.list_assets(db, owner))


@router.get("/{asset_id}", response_model=schemas.AssetOut)
def get_asset(
    asset_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return _asset_or_404(db, owner, asset_id)


@router.delete("/{asset_id}")
def delete_asset(
    asset_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    try:
        conflicts.delete_asset(db, owner, asset_id, now=clock())
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    db.commit()
    return {"message": "Asset removed"}


@router.put("/{asset_id}/beneficiaries", response_model=schemas.AssetOut)
def update_beneficiaries(
    asset_id: UUID,
    payload: schemas.BeneficiaryUpdate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    asset = _asset_or_404(db, owner, asset_id)
    conflicts.update_beneficiaries(db, asset, payload.beneficiary_designation, now=clock())
    db.commit()
    db.refresh(asset)
    return asset


@router.post("/{asset_id}/check-conflicts", response_model=schemas.ConflictCheckOut)
def check_conflicts(
    asset_id: UUID,
    payload: schemas.ConflictCheckRequest,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    asset = _asset_or_404(db, owner, asset_id)
    findings = conflicts.check_asset_conflicts(
        db, asset, payload.will_beneficiaries, now=clock()
    )
    db.commit()
    db.refresh(asset)
    return schemas.ConflictCheckOut(
        asset=schemas.AssetOut.model_validate(asset),
        conflicts=findings,
        conflict_status=asset.conflict_status,
    )
