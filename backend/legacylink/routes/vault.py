"""Protected item and per-trustee access grant routes."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_owner
from ..clock import Clock, get_clock
from ..database import get_db
from ..services import access_grants, trustees, vault
from ..services.errors import DuplicateGrantError, NotFound

# purpose: let owners store items, attach trustee grants, release or revoke them, and check access
# status: active
# depends_on: legacylink.services.access_grants

router = APIRouter(prefix="/api/items", tags=["items"])


def _item_or_404(db: Session, owner: models.Owner, item_id: UUID) -> models.ProtectedItem:
    try:
        return access_grants.get_owned_item(db, owner, item_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


def _trustee_or_404(db: Session, owner: models.Owner, trustee_id: UUID) -> models.Trustee:
    try:
        return trustees.get_owned_trustee(db, owner, trustee_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("", status_code=status.HTTP_201_CREATED, response_model=schemas.ProtectedItemOut)
def create_item(
    payload: schemas.ProtectedItemCreate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    item = vault.create_item(db, owner, payload, now=clock())
    db.commit()
    db.refresh(item)
    return item


@router.get("", response_model=List[schemas.ProtectedItemOut])
def list_items(
    category: Optional[str] = None,
    item_type: Optional[schemas.vault.ItemType] = None,
    importance: Optional[schemas.vault.Importance] = None,
    tag: Optional[str] = None,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return vault.list_items(
        db,
        owner,
        category=category,
        item_type=item_type,
        importance=importance,
        tag=tag,
    )


@router.get("/{item_id}", response_model=schemas.ProtectedItemOut)
def get_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return _item_or_404(db, owner, item_id)


@router.put("/{item_id}", response_model=schemas.ProtectedItemOut)
def update_item(
    item_id: UUID,
    payload: schemas.ProtectedItemUpdate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    item = _item_or_404(db, owner, item_id)
    vault.update_item(db, item, payload, now=clock())
    db.commit()
    db.refresh(item)
    return item


@router.delete("/{item_id}")
def delete_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    try:
        vault.delete_item(db, owner, item_id, now=clock())
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    db.commit()
    return {"message": "Item removed"}


@router.put("/{item_id}/public", response_model=schemas.ProtectedItemOut)
def set_public(
    item_id: UUID,
    payload: schemas.PublicToggle,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    item = _item_or_404(db, owner, item_id)
    item.is_public = payload.is_public
    db.commit()
    db.refresh(item)
    return item


@router.post(
    "/{item_id}/grants",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.AccessGrantOut,
)
def create_grant(
    item_id: UUID,
    payload: schemas.AccessGrantCreate,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    item = _item_or_404(db, owner, item_id)
    trustee = _trustee_or_404(db, owner, payload.trustee_id)
    try:
        grant = access_grants.create_grant(
            db,
            item,
            trustee,
            access_trigger=payload.access_trigger,
            trigger_date=payload.trigger_date,
            now=clock(),
        )
    except DuplicateGrantError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    db.commit()
    db.refresh(grant)
    return grant


@router.get("/{item_id}/grants", response_model=List[schemas.AccessGrantOut])
def list_grants(
    item_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    item = _item_or_404(db, owner, item_id)
    return access_grants.list_item_grants(db, item)


@router.post("/{item_id}/grants/{trustee_id}/release", response_model=schemas.AccessGrantOut)
def release_grant(
    item_id: UUID,
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    item = _item_or_404(db, owner, item_id)
    trustee = _trustee_or_404(db, owner, trustee_id)
    try:
        grant = access_grants.get_grant(db, item, trustee, for_update=True)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    access_grants.manual_release(db, grant, now=clock())
    db.commit()
    db.refresh(grant)
    return grant


@router.delete("/{item_id}/grants/{trustee_id}", response_model=schemas.AccessGrantOut)
def revoke_grant(
    item_id: UUID,
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
    clock: Clock = Depends(get_clock),
):
    item = _item_or_404(db, owner, item_id)
    trustee = _trustee_or_404(db, owner, trustee_id)
    try:
        grant = access_grants.revoke(db, item, trustee, now=clock())
    except NotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    db.commit()
    db.refresh(grant)
    return grant


@router.get("/{item_id}/access/{trustee_id}", response_model=schemas.AccessCheckOut)
def check_access(
    item_id: UUID,
    trustee_id: UUID,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    item = _item_or_404(db, owner, item_id)
    trustee = _trustee_or_404(db, owner, trustee_id)
    return schemas.AccessCheckOut(
        item_id=item.id,
        trustee_id=trustee.id,
        can_access=access_grants.can_access(db, item, trustee),
    )
