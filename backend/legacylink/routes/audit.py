from datetime import datetime
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends
from ..database import get_db
from ..auth import get_current_owner
from .. import models, schemas, audit

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=list[schemas.AuditLogOut])
def list_logs(
    action: str | None = None,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    query = db.query(models.AuditLog).filter(models.AuditLog.owner_id == owner.id)
    if action:
        query = query.filter(models.AuditLog.action == action)
    return query.order_by(models.AuditLog.created_at.desc()).all()


@router.get("/report", response_model=list[schemas.AuditReportItem])
def audit_report(
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
    owner: models.Owner = Depends(get_current_owner),
):
    return audit.generate_report(db, start, end, owner.id)
