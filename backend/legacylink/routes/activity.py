"""Owner activity and dead man's switch check-in routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_owner
from ..clock import Clock, get_clock
from ..database import get_db
from ..services import activity

router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("/me", response_model=schemas.OwnerOut)
def read_owner(owner: models.Owner = Depends(get_current_owner)):
    return owner


@router.post("/check-in", response_model=schemas.OwnerOut)
def check_in(
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    activity.record_check_in(db, owner, now=clock())
    db.commit()
    db.refresh(owner)
    return owner


@router.put("/check-in-frequency", response_model=schemas.OwnerOut)
def update_frequency(
    payload: schemas.CheckInFrequencyUpdate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    try:
        activity.update_check_in_frequency(db, owner, payload.frequency, now=clock())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    db.commit()
    db.refresh(owner)
    return owner


@router.get("/status", response_model=schemas.ActivityStatusOut)
def activity_status(
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    now = clock()
    return schemas.ActivityStatusOut(
        owner_id=owner.id,
        status=activity.evaluate_inactivity(owner, now=now).value,
        last_check_in=owner.last_check_in,
        check_in_frequency_days=owner.check_in_frequency_days,
        days_since_check_in=activity.days_since_check_in(owner, now=now),
        evaluated_at=now,
    )
