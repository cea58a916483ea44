"""Protected item storage for an owner's vault."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, schemas
from .access_grants import get_owned_item

# purpose: create, edit, filter, and delete the items trustees may later receive
# inputs: owner, item payloads, listing filters
# outputs: ProtectedItem rows; grants cascade with their item
# status: active


def create_item(
    db: Session, owner: models.Owner, payload: schemas.ProtectedItemCreate, *, now: datetime
) -> models.ProtectedItem:
    item = models.ProtectedItem(
        owner_id=owner.id,
        title=payload.title,
        item_type=payload.item_type,
        category=payload.category,
        tags=list(payload.tags),
        description=payload.description,
        content=payload.content,
        is_public=payload.is_public,
        importance=payload.importance,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    db.flush()
    return item


def update_item(
    db: Session,
    item: models.ProtectedItem,
    payload: schemas.ProtectedItemUpdate,
    *,
    now: datetime,
) -> models.ProtectedItem:
    """Apply the fields present in ``payload``; grants are left as they are."""

    changes = payload.model_dump(exclude_unset=True)
    if "tags" in changes:
        changes["tags"] = list(changes["tags"] or [])
    for field, value in changes.items():
        setattr(item, field, value)
    item.updated_at = now
    db.flush()
    return item


def delete_item(db: Session, owner: models.Owner, item_id: UUID, *, now: datetime) -> None:
    """Delete an item together with every grant attached to it."""

    item = get_owned_item(db, owner, item_id)
    db.delete(item)
    audit.log_action(db, owner.id, "item_deleted", "protected_item", item_id, now=now)
    db.flush()


def list_items(
    db: Session,
    owner: models.Owner,
    *,
    category: str | None = None,
    item_type: str | None = None,
    importance: str | None = None,
    tag: str | None = None,
) -> list[models.ProtectedItem]:
    query = db.query(models.ProtectedItem).filter(models.ProtectedItem.owner_id == owner.id)
    if category:
        query = query.filter(models.ProtectedItem.category == category)
    if item_type:
        query = query.filter(models.ProtectedItem.item_type == item_type)
    if importance:
        query = query.filter(models.ProtectedItem.importance == importance)
    items = query.order_by(models.ProtectedItem.updated_at.desc()).all()
    if tag:
        # JSON containment differs between SQLite and Postgres; filter here
        items = [item for item in items if tag in (item.tags or [])]
    return items
