from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import func
from . import models


def log_action(
    db: Session,
    owner_id: str | UUID,
    action: str,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
    *,
    now: datetime | None = None,
):
    log = models.AuditLog(
        owner_id=UUID(str(owner_id)),
        action=action,
        target_type=target_type,
        target_id=UUID(str(target_id)) if target_id else None,
        details=details or {},
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(log)
    return log


def generate_report(
    db: Session,
    start: datetime,
    end: datetime,
    owner_id: UUID | None = None,
):
    query = db.query(models.AuditLog).filter(
        models.AuditLog.created_at >= start,
        models.AuditLog.created_at <= end,
    )
    if owner_id:
        query = query.filter(models.AuditLog.owner_id == owner_id)
    rows = (
        query.with_entities(models.AuditLog.action, func.count(models.AuditLog.id))
        .group_by(models.AuditLog.action)
        .all()
    )
    return [{"action": r[0], "count": r[1]} for r in rows]
