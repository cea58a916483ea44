"""Per-item trustee access grants and the access decision point."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import audit, models
from ..clock import ensure_utc
from .activity import OwnerActivity
from .errors import DuplicateGrantError, NotFound

# purpose: evaluate grant triggers, apply explicit releases and revocations, answer access checks
# inputs: grant rows, owner activity signal, evaluation instant
# outputs: sticky access_granted flags and the can_access decision
# status: active


def get_owned_item(
    db: Session, owner: models.Owner, item_id: UUID
) -> models.ProtectedItem:
    item = (
        db.query(models.ProtectedItem)
        .filter(
            models.ProtectedItem.id == item_id,
            models.ProtectedItem.owner_id == owner.id,
        )
        .one_or_none()
    )
    if item is None:
        raise NotFound(f"item {item_id} not found")
    return item


def get_grant(
    db: Session,
    item: models.ProtectedItem,
    trustee: models.Trustee,
    *,
    for_update: bool = False,
) -> models.AccessGrant:
    query = db.query(models.AccessGrant).filter(
        models.AccessGrant.item_id == item.id,
        models.AccessGrant.trustee_id == trustee.id,
    )
    if for_update:
        query = query.with_for_update()
    grant = query.one_or_none()
    if grant is None:
        raise NotFound(f"no grant for item {item.id} and trustee {trustee.id}")
    return grant


def list_item_grants(db: Session, item: models.ProtectedItem) -> list[models.AccessGrant]:
    return (
        db.query(models.AccessGrant)
        .filter(models.AccessGrant.item_id == item.id)
        .order_by(models.AccessGrant.created_at.asc())
        .all()
    )


def _mark_granted(grant: models.AccessGrant, now: datetime) -> None:
    grant.access_granted = True
    grant.access_granted_date = now


def create_grant(
    db: Session,
    item: models.ProtectedItem,
    trustee: models.Trustee,
    *,
    access_trigger: str,
    trigger_date: datetime | None = None,
    now: datetime,
) -> models.AccessGrant:
    """Attach a trustee to an item. ``immediate`` grants are released at creation."""

    if trustee.owner_id != item.owner_id:
        raise NotFound(f"trustee {trustee.id} not found")
    existing = (
        db.query(models.AccessGrant.id)
        .filter(
            models.AccessGrant.item_id == item.id,
            models.AccessGrant.trustee_id == trustee.id,
        )
        .first()
    )
    if existing is not None:
        raise DuplicateGrantError(
            f"grant for item {item.id} and trustee {trustee.id} already exists"
        )
    grant = models.AccessGrant(
        item_id=item.id,
        trustee_id=trustee.id,
        access_trigger=access_trigger,
        trigger_date=trigger_date,
        access_granted=False,
        created_at=now,
    )
    if access_trigger == "immediate":
        _mark_granted(grant, now)
    db.add(grant)
    db.flush()
    audit.log_action(
        db,
        item.owner_id,
        "grant_created",
        "access_grant",
        grant.id,
        {"trigger": access_trigger},
        now=now,
    )
    return grant


def grant_due(grant: models.AccessGrant, activity: OwnerActivity, *, now: datetime) -> bool:
    trigger = grant.access_trigger
    if trigger == "immediate":
        return True
    if trigger == "inactivity":
        return activity is OwnerActivity.OVERDUE
    if trigger == "date":
        trigger_date = ensure_utc(grant.trigger_date)
        return trigger_date is not None and ensure_utc(now) >= trigger_date
    return False


def evaluate_grant(
    grant: models.AccessGrant, activity: OwnerActivity, *, now: datetime
) -> bool:
    """Release a grant whose trigger holds. Returns True when the grant changed.

    Granted rows stay granted and revoked rows stay closed. Grants to a
    trustee who declined the role never open automatically; neither do
    manual grants, which only open through ``manual_release``.
    """

    was_granted = bool(grant.access_granted)
    due = (
        grant.revoked_at is None
        and grant.trustee.verification_status != "declined"
        and grant_due(grant, activity, now=now)
    )
    if due and not was_granted:
        _mark_granted(grant, now)
    assert grant.access_granted or not was_granted, (
        f"evaluation cleared granted flag on grant {grant.id}"
    )
    return bool(grant.access_granted) and not was_granted


def manual_release(
    db: Session, grant: models.AccessGrant, *, now: datetime
) -> models.AccessGrant:
    """Owner-initiated release; also re-opens a previously revoked grant."""

    if not grant.access_granted:
        _mark_granted(grant, now)
    grant.revoked_at = None
    audit.log_action(
        db,
        grant.item.owner_id,
        "grant_released",
        "access_grant",
        grant.id,
        now=now,
    )
    db.flush()
    return grant


def revoke(
    db: Session,
    item: models.ProtectedItem,
    trustee: models.Trustee,
    *,
    now: datetime,
) -> models.AccessGrant:
    """Owner-initiated revocation. The sweep never calls this."""

    grant = get_grant(db, item, trustee, for_update=True)
    grant.access_granted = False
    grant.revoked_at = now
    audit.log_action(
        db, item.owner_id, "grant_revoked", "access_grant", grant.id, now=now
    )
    db.flush()
    return grant


def can_access(
    db: Session, item: models.ProtectedItem, trustee: models.Trustee
) -> bool:
    """Single authorization decision for serving an item to a trustee.

    Reads persisted state on every call and never takes row locks.
    """

    if trustee.owner_id != item.owner_id:
        return False
    if item.is_public:
        return True
    granted = (
        db.query(models.AccessGrant.id)
        .filter(
            models.AccessGrant.item_id == item.id,
            models.AccessGrant.trustee_id == trustee.id,
            models.AccessGrant.access_granted == True,
        )
        .first()
    )
    return granted is not None


def list_accessible_items(
    db: Session, owner: models.Owner, trustee: models.Trustee
) -> list[models.ProtectedItem]:
    if trustee.owner_id != owner.id:
        raise NotFound(f"trustee {trustee.id} not found")
    granted_item_ids = (
        sa.select(models.AccessGrant.item_id)
        .where(
            models.AccessGrant.trustee_id == trustee.id,
            models.AccessGrant.access_granted == True,
        )
    )
    return (
        db.query(models.ProtectedItem)
        .filter(models.ProtectedItem.owner_id == owner.id)
        .filter(
            sa.or_(
                models.ProtectedItem.is_public == True,
                models.ProtectedItem.id.in_(granted_item_ids),
            )
        )
        .order_by(models.ProtectedItem.updated_at.desc())
        .all()
    )
