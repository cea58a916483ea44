"""Owner activity tracking and inactivity evaluation."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy.orm import Session

from .. import audit, models
from ..clock import ensure_utc

# purpose: decide whether an owner has gone quiet long enough to trip the dead man's switch
# inputs: owner check-in timestamp, configured frequency, evaluation instant
# outputs: OwnerActivity signal consumed by trustee and grant evaluation
# status: active


class OwnerActivity(str, enum.Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"


def days_since_check_in(owner: models.Owner, *, now: datetime) -> int:
    """Whole days elapsed since the owner last checked in, floored."""

    return (ensure_utc(now) - ensure_utc(owner.last_check_in)).days


def evaluate_inactivity(owner: models.Owner, *, now: datetime) -> OwnerActivity:
    """Return ``OVERDUE`` once the elapsed whole days exceed the frequency.

    Exactly ``check_in_frequency_days`` elapsed is still active.
    """

    if days_since_check_in(owner, now=now) > owner.check_in_frequency_days:
        return OwnerActivity.OVERDUE
    return OwnerActivity.ACTIVE


def record_check_in(db: Session, owner: models.Owner, *, now: datetime) -> models.Owner:
    """Move ``last_check_in`` forward to ``now``; earlier instants are ignored."""

    current = ensure_utc(owner.last_check_in)
    now = ensure_utc(now)
    if current is None or now > current:
        owner.last_check_in = now
        audit.log_action(db, owner.id, "check_in", "owner", owner.id, now=now)
    return owner


def update_check_in_frequency(
    db: Session, owner: models.Owner, days: int, *, now: datetime | None = None
) -> models.Owner:
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise ValueError("Check-in frequency must be a positive number of days")
    previous = owner.check_in_frequency_days
    owner.check_in_frequency_days = days
    audit.log_action(
        db,
        owner.id,
        "check_in_frequency_updated",
        "owner",
        owner.id,
        {"previous": previous, "frequency": days},
        now=now,
    )
    return owner
