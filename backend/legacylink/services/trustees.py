"""Trustee verification and notification lifecycle."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Protocol
from uuid import UUID

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..clock import ensure_utc
from .activity import OwnerActivity
from .errors import InvalidState, NotFound, NotificationDeliveryError

# purpose: manage trustee verification state and fire release notices exactly once
# inputs: trustee rows, owner activity signal, evaluation instant, notifier collaborator
# outputs: mutated trustee rows plus notifier side effects
# status: active

_logger = get_task_logger(__name__)

RELEASE_NOTICE = "release_notice"
VERIFICATION_REQUEST = "verification_request"


class Notifier(Protocol):
    def send(self, trustee: models.Trustee, message_kind: str) -> None: ...


def _issue_verification_code() -> str:
    return uuid.uuid4().hex[:12]


def get_owned_trustee(
    db: Session, owner: models.Owner, trustee_id: UUID, *, for_update: bool = False
) -> models.Trustee:
    """Load a trustee that belongs to ``owner`` or raise ``NotFound``."""

    query = db.query(models.Trustee).filter(
        models.Trustee.id == trustee_id, models.Trustee.owner_id == owner.id
    )
    if for_update:
        query = query.with_for_update()
    trustee = query.one_or_none()
    if trustee is None:
        raise NotFound(f"trustee {trustee_id} not found")
    return trustee


def create_trustee(
    db: Session,
    owner: models.Owner,
    payload: schemas.TrusteeCreate,
    *,
    now: datetime,
) -> models.Trustee:
    trustee = models.Trustee(
        owner_id=owner.id,
        name=payload.name,
        email=payload.email,
        relationship_label=payload.relationship,
        phone_number=payload.phone_number,
        access_level=payload.access_level,
        custom_access=list(payload.custom_access),
        notification_trigger=payload.notification_trigger,
        trigger_date=payload.trigger_date,
        verification_status="pending",
        verification_code=_issue_verification_code(),
        notified=False,
        created_at=now,
    )
    trustee.owner = owner
    db.add(trustee)
    db.flush()
    audit.log_action(db, owner.id, "trustee_created", "trustee", trustee.id, now=now)
    return trustee


def update_trustee(
    db: Session, trustee: models.Trustee, payload: schemas.TrusteeUpdate
) -> models.Trustee:
    """Apply contact and access-level edits; trigger and lifecycle fields are fixed."""

    if payload.name is not None:
        trustee.name = payload.name
    if payload.relationship is not None:
        trustee.relationship_label = payload.relationship
    if payload.phone_number is not None:
        trustee.phone_number = payload.phone_number
    if payload.access_level is not None:
        trustee.access_level = payload.access_level
    if payload.custom_access is not None:
        trustee.custom_access = list(payload.custom_access)
    if trustee.access_level != "custom" and trustee.custom_access:
        raise ValueError("custom_access is only valid with the custom access level")
    db.flush()
    return trustee


def remove_trustee(db: Session, owner: models.Owner, trustee_id: UUID) -> None:
    """Delete a trustee; its access grants go with it."""

    trustee = get_owned_trustee(db, owner, trustee_id)
    db.delete(trustee)
    audit.log_action(db, owner.id, "trustee_removed", "trustee", trustee_id)
    db.flush()


def request_verification(
    db: Session, trustee: models.Trustee, *, notifier: Notifier
) -> models.Trustee:
    """Re-send the verification request to a trustee who has not answered yet."""

    if trustee.verification_status != "pending":
        raise InvalidState(
            f"trustee {trustee.id} is {trustee.verification_status}; recreate the trustee to re-invite"
        )
    if not trustee.verification_code:
        trustee.verification_code = _issue_verification_code()
    db.flush()
    notifier.send(trustee, VERIFICATION_REQUEST)
    return trustee


def _settle_verification(
    db: Session,
    trustee: models.Trustee,
    proof: str,
    outcome: str,
    *,
    now: datetime,
) -> models.Trustee:
    if trustee.verification_status != "pending":
        raise InvalidState(
            f"trustee {trustee.id} is already {trustee.verification_status}"
        )
    if not trustee.verification_code or proof != trustee.verification_code:
        raise InvalidState(f"verification code rejected for trustee {trustee.id}")
    trustee.verification_status = outcome
    trustee.verified_at = now
    trustee.verification_code = None
    audit.log_action(
        db, trustee.owner_id, f"trustee_{outcome}", "trustee", trustee.id, now=now
    )
    db.flush()
    return trustee


def verify_trustee(
    db: Session, trustee: models.Trustee, proof: str, *, now: datetime
) -> models.Trustee:
    return _settle_verification(db, trustee, proof, "verified", now=now)


def decline_trustee(
    db: Session, trustee: models.Trustee, proof: str, *, now: datetime
) -> models.Trustee:
    return _settle_verification(db, trustee, proof, "declined", now=now)


def notification_due(
    trustee: models.Trustee, activity: OwnerActivity, *, now: datetime
) -> bool:
    """Whether an un-notified trustee's trigger condition currently holds.

    A trustee who declined the role is never notified automatically.
    """

    if trustee.notified:
        return False
    if trustee.verification_status == "declined":
        return False
    if trustee.notification_trigger == "inactivity":
        return activity is OwnerActivity.OVERDUE
    if trustee.notification_trigger == "date":
        trigger_date = ensure_utc(trustee.trigger_date)
        return trigger_date is not None and ensure_utc(now) >= trigger_date
    return False


def evaluate_notification(
    trustee: models.Trustee,
    activity: OwnerActivity,
    *,
    now: datetime,
    notifier: Notifier,
) -> bool:
    """Fire the release notice when due. Returns True only when a notice was delivered.

    Any delivery failure leaves ``notified`` false so the next sweep retries.
    """

    if not notification_due(trustee, activity, now=now):
        return False
    try:
        notifier.send(trustee, RELEASE_NOTICE)
    except NotificationDeliveryError as exc:
        _logger.warning(
            "Release notice for trustee %s (owner %s) not delivered: %s",
            trustee.id,
            trustee.owner_id,
            exc,
        )
        return False
    except AssertionError:
        raise
    except Exception:
        _logger.exception(
            "Notifier raised for trustee %s (owner %s)", trustee.id, trustee.owner_id
        )
        return False
    trustee.notified = True
    trustee.notified_at = now
    return True


def notify_trustee_manually(
    db: Session,
    trustee: models.Trustee,
    *,
    now: datetime,
    notifier: Notifier,
) -> models.Trustee:
    """Owner-initiated release notice; the only way a manual-trigger trustee is notified."""

    if trustee.notified:
        raise InvalidState(f"trustee {trustee.id} has already been notified")
    notifier.send(trustee, RELEASE_NOTICE)
    trustee.notified = True
    trustee.notified_at = now
    audit.log_action(
        db, trustee.owner_id, "trustee_notified", "trustee", trustee.id, now=now
    )
    db.flush()
    return trustee
