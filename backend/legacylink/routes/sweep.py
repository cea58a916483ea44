"""Operator trigger for a single release sweep."""

from fastapi import APIRouter, Depends, HTTPException, status

from .. import models, notify, schemas
from ..auth import get_current_owner, is_operator
from ..clock import Clock, get_clock
from ..database import SessionLocal
from ..services import release_sweep

router = APIRouter(prefix="/api/sweep", tags=["sweep"])


def get_session_factory():
    return SessionLocal


@router.post("/run", response_model=schemas.SweepReport)
def run_sweep(
    owner: models.Owner = Depends(get_current_owner),
    session_factory=Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    notifier: notify.TrusteeNotifier = Depends(notify.get_notifier),
):
    # cross-owner job: operators only
    if not is_operator(owner):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Sweep requires an operator account"
        )
    return release_sweep.run_sweep_once(
        session_factory, clock=clock, notifier=notifier
    )
