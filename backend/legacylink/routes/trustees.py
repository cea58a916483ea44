"""Trustee management, verification, and manual notification routes."""

from __future__ import annotations

from typing import List
from uuid import UUID

from celery.utils.log import get_task_logger
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, notify, schemas
from ..auth import get_current_owner
from ..clock import Clock, get_clock
from ..database import get_db
from ..services import access_grants, trustees
from ..services.errors import InvalidState, NotFound, NotificationDeliveryError

# purpose: expose trustee lifecycle operations to owners and invited trustees
# status: active
# depends_on: legacylink.services.trustees, legacylink.services.access_grants

_logger = get_task_logger(__name__)

router = APIRouter(prefix="/api/trustees", tags=["trustees"])
verification_router = APIRouter(
    prefix="/api/trustee-verification", tags=["trustees"]
)


def _load_trustee(db: Session, trustee_id: UUID) -> models.Trustee:
    trustee = (
        db.query(models.Trustee)
        .filter(models.Trustee.id == trustee_id)
        .with_for_update()
        .one_or_none()
    )
    if trustee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trustee not found")
    return trustee


@router.get("", response_model=List[schemas.TrusteeOut])
def list_trustees(owner: models.Owner = Depends(get_current_owner)):
    return owner.trustees


@router.post("", status_code=status.HTTP_201_CREATED, response_model=schemas.TrusteeOut)
def create_trustee(
    payload: schemas.TrusteeCreate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
    notifier: notify.TrusteeNotifier = Depends(notify.get_notifier),
):
    trustee = trustees.create_trustee(db, owner, payload, now=clock())
    db.commit()
    db.refresh(trustee)
    try:
        trustees.request_verification(db, trustee, notifier=notifier)
    except NotificationDeliveryError as exc:
        _logger.warning("Verification request for trustee %s not delivered: %s", trustee.id, exc)
    db.commit()
    db.refresh(trustee)
    return trustee


@router.put("/{trustee_id}", response_model=schemas.TrusteeOut)
def update_trustee(
    trustee_id: UUID,
    payload: schemas.TrusteeUpdate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    try:
        trustee = trustees.get_owned_trustee(db, owner, trustee_id, for_update=True)
        trustees.update_trustee(db, trustee, payload)
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    db.commit()
    db.refresh(trustee)
    return trustee


@router.delete("/{trustee_id}")
def delete_trustee(
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    try:
        trustees.remove_trustee(db, owner, trustee_id)
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    db.commit()
    return {"message": "Trustee removed"}


@router.post("/{trustee_id}/request-verification", response_model=schemas.TrusteeOut)
def request_verification(
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    notifier: notify.TrusteeNotifier = Depends(notify.get_notifier),
):
    try:
        trustee = trustees.get_owned_trustee(db, owner, trustee_id, for_update=True)
        trustees.request_verification(db, trustee, notifier=notifier)
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidState as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except NotificationDeliveryError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    db.commit()
    db.refresh(trustee)
    return trustee


@router.post("/{trustee_id}/notify", response_model=schemas.TrusteeOut)
def notify_trustee(
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
    notifier: notify.TrusteeNotifier = Depends(notify.get_notifier),
):
    try:
        trustee = trustees.get_owned_trustee(db, owner, trustee_id, for_update=True)
        trustees.notify_trustee_manually(db, trustee, now=clock(), notifier=notifier)
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidState as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except NotificationDeliveryError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    db.commit()
    db.refresh(trustee)
    return trustee


@router.get("/{trustee_id}/items", response_model=List[schemas.ProtectedItemOut])
def accessible_items(
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    try:
        trustee = trustees.get_owned_trustee(db, owner, trustee_id)
        return access_grants.list_accessible_items(db, owner, trustee)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@verification_router.post("/{trustee_id}/verify", response_model=schemas.TrusteeOut)
def verify_trustee(
    trustee_id: UUID,
    payload: schemas.TrusteeVerification,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    trustee = _load_trustee(db, trustee_id)
    try:
        trustees.verify_trustee(db, trustee, payload.verification_code, now=clock())
    except InvalidState as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    db.commit()
    db.refresh(trustee)
    return trustee


@verification_router.post("/{trustee_id}/decline", response_model=schemas.TrusteeOut)
def decline_trustee(
    trustee_id: UUID,
    payload: schemas.TrusteeVerification,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    trustee = _load_trustee(db, trustee_id)
    try:
        trustees.decline_trustee(db, trustee, payload.verification_code, now=clock())
    except InvalidState as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    db.commit()
    db.refresh(trustee)
    return trustee
