"""Beneficiary conflict record routes."""

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
from ..services.errors import InvalidState, NotFound

router = APIRouter(prefix="/api/conflicts", tags=["conflicts"])


def _conflict_or_404(
    db: Session, owner: models.Owner, conflict_id: UUID
) -> models.ConflictRecord:
    try:
        return conflicts.get_owned_conflict(db, owner, conflict_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("", status_code=status.HTTP_201_CREATED, response_model=schemas.ConflictRecordOut)
def create_conflict(
    payload: schemas.ConflictCreate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    try:
        record = conflicts.create_conflict(db, owner, payload, now=clock())
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    db.commit()
    db.refresh(record)
    return record


@router.get("", response_model=List[schemas.ConflictRecordOut])
def list_conflicts(
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return conflicts.list_conflicts(db, owner)


@router.get("/unresolved", response_model=List[schemas.ConflictRecordOut])
def list_unresolved(
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return conflicts.list_conflicts(db, owner, unresolved_only=True)


@router.get("/summary", response_model=schemas.ConflictSummary)
def conflict_summary(
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    return conflicts.summarize_conflicts(conflicts.list_conflicts(db, owner), now=clock())


@router.get("/{conflict_id}", response_model=schemas.ConflictRecordOut)
def get_conflict(
    conflict_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return _conflict_or_404(db, owner, conflict_id)


@router.put("/{conflict_id}/status", response_model=schemas.ConflictRecordOut)
def update_status(
    conflict_id: UUID,
    payload: schemas.ConflictStatusUpdate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    record = _conflict_or_404(db, owner, conflict_id)
    try:
        conflicts.update_conflict_status(db, record, payload.status)
    except InvalidState as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    db.commit()
    db.refresh(record)
    return record


@router.put("/{conflict_id}/resolve", response_model=schemas.ConflictRecordOut)
def resolve(
    conflict_id: UUID,
    payload: schemas.ConflictResolve,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    record = _conflict_or_404(db, owner, conflict_id)
    try:
        conflicts.resolve_conflict(db, record, payload.resolution_notes, now=clock())
    except InvalidState as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    db.commit()
    db.refresh(record)
    return record


@router.delete("/{conflict_id}")
def delete_conflict(
    conflict_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    try:
        conflicts.delete_conflict(db, owner, conflict_id, now=clock())
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    db.commit()
    return {"message": "Conflict removed"}
