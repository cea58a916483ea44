"""Periodic release sweep driving notifications and grants forward in time."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import UUID

from celery.utils.log import get_task_logger
from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, notify, schemas
from ..clock import Clock, utcnow
from ..database import SessionLocal
from .access_grants import evaluate_grant
from .activity import evaluate_inactivity
from .errors import PersistenceError, SweepUnitError
from .trustees import Notifier, evaluate_notification, notification_due

# purpose: enact the dead man's switch by sweeping every owner's triggers on a timer
# inputs: session factory, injectable clock, notifier collaborator, optional stop signal
# outputs: SweepReport with per-owner failures isolated and collected
# status: active

_logger = get_task_logger(__name__)

SWEEP_RUNS = Counter("release_sweep_runs_total", "Completed release sweeps")
SWEEP_OWNER_FAILURES = Counter(
    "release_sweep_owner_failures_total", "Owner units that failed during a sweep"
)
NOTIFICATIONS_SENT = Counter(
    "release_sweep_notifications_total", "Release notices delivered by the sweep"
)
GRANTS_RELEASED = Counter(
    "release_sweep_grants_released_total", "Access grants released by the sweep"
)

SessionFactory = Callable[[], Session]

# One sweep at a time per process; a late tick waits instead of overlapping.
_SWEEP_LOCK = threading.Lock()


@dataclass(slots=True)
class OwnerSweepResult:
    """Counts produced by one owner's unit of work."""

    notifications_sent: int = 0
    notifications_failed: int = 0
    grants_released: int = 0


def sweep_owner(
    db: Session,
    owner: models.Owner,
    *,
    now: datetime,
    notifier: Notifier,
) -> OwnerSweepResult:
    """Evaluate one owner's trustees and grants against a single activity reading.

    Trustee and grant rows are locked for the duration of the caller's
    transaction so manual owner actions on the same rows serialize with it.
    """

    result = OwnerSweepResult()
    activity = evaluate_inactivity(owner, now=now)

    trustees = (
        db.query(models.Trustee)
        .filter(models.Trustee.owner_id == owner.id)
        .order_by(models.Trustee.created_at.asc())
        .with_for_update()
        .all()
    )
    for trustee in trustees:
        if not notification_due(trustee, activity, now=now):
            continue
        if evaluate_notification(trustee, activity, now=now, notifier=notifier):
            result.notifications_sent += 1
        else:
            result.notifications_failed += 1

    grants = (
        db.query(models.AccessGrant)
        .join(models.ProtectedItem, models.AccessGrant.item_id == models.ProtectedItem.id)
        .filter(models.ProtectedItem.owner_id == owner.id)
        .order_by(models.AccessGrant.created_at.asc())
        .with_for_update(of=models.AccessGrant)
        .all()
    )
    for grant in grants:
        if evaluate_grant(grant, activity, now=now):
            result.grants_released += 1
    return result


def _run_owner_unit(
    session_factory: SessionFactory,
    owner_id: UUID,
    *,
    now: datetime,
    notifier: Notifier,
) -> OwnerSweepResult:
    db = session_factory()
    try:
        owner = db.get(models.Owner, owner_id)
        if owner is None:
            return OwnerSweepResult()
        result = sweep_owner(db, owner, now=now, notifier=notifier)
        db.commit()
        return result
    except AssertionError:
        # broken sticky-flag invariants stop the sweep
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(owner_id, str(exc)) from exc
    except Exception as exc:
        db.rollback()
        _logger.exception("Release sweep unit raised for owner %s", owner_id)
        raise SweepUnitError(owner_id, f"{type(exc).__name__}: {exc}") from exc
    finally:
        db.close()


def _owner_ids(session_factory: SessionFactory) -> list[UUID]:
    db = session_factory()
    try:
        rows = db.query(models.Owner.id).order_by(models.Owner.created_at.asc()).all()
        return [row[0] for row in rows]
    finally:
        db.close()


def run_sweep_once(
    session_factory: SessionFactory = SessionLocal,
    *,
    clock: Clock = utcnow,
    notifier: Notifier | None = None,
    stop_event: threading.Event | None = None,
) -> schemas.SweepReport:
    """Run one sweep across all owners.

    ``now`` is read once so every owner in the sweep sees the same instant. A
    failing owner is rolled back, logged, and reported; the rest continue.
    When ``stop_event`` is set the sweep halts between owner units.
    """

    notifier = notifier or notify.get_notifier()
    with _SWEEP_LOCK:
        now = clock()
        report = schemas.SweepReport(started_at=now)
        for owner_id in _owner_ids(session_factory):
            if stop_event is not None and stop_event.is_set():
                _logger.info("Release sweep stopping before owner %s", owner_id)
                break
            try:
                result = _run_owner_unit(
                    session_factory, owner_id, now=now, notifier=notifier
                )
            except SweepUnitError as exc:
                SWEEP_OWNER_FAILURES.inc()
                report.owners_failed += 1
                report.errors.append(
                    schemas.SweepError(owner_id=owner_id, message=str(exc))
                )
                _logger.warning(
                    "Release sweep failed for owner %s; retrying next tick: %s",
                    owner_id,
                    exc,
                )
                continue
            report.owners_processed += 1
            report.notifications_sent += result.notifications_sent
            report.notifications_failed += result.notifications_failed
            report.grants_released += result.grants_released
            NOTIFICATIONS_SENT.inc(result.notifications_sent)
            GRANTS_RELEASED.inc(result.grants_released)
        report.finished_at = clock()
    SWEEP_RUNS.inc()
    _logger.info(
        "Release sweep finished: %s owners, %s failed, %s notices, %s grants",
        report.owners_processed,
        report.owners_failed,
        report.notifications_sent,
        report.grants_released,
    )
    return report


class ReleaseScheduler:
    """Run ``run_sweep_once`` on a fixed interval in a background thread.

    A sweep that overruns the interval delays the next one. ``stop`` lets the
    owner unit in flight finish before the thread exits. A tick that raises
    is logged and counted in ``failed_ticks``; the loop keeps going.
    """

    def __init__(
        self,
        interval_seconds: float,
        *,
        session_factory: SessionFactory = SessionLocal,
        clock: Clock = utcnow,
        notifier: Notifier | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self.clock = clock
        self.notifier = notifier
        self.last_report: schemas.SweepReport | None = None
        self.failed_ticks = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> schemas.SweepReport:
        self.last_report = run_sweep_once(
            self.session_factory,
            clock=self.clock,
            notifier=self.notifier,
            stop_event=self._stop,
        )
        return self.last_report

    def _loop(self) -> None:
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                self.run_once()
            except Exception:
                self.failed_ticks += 1
                _logger.exception(
                    "Release sweep tick failed; retrying in %ss", self.interval_seconds
                )
            elapsed = time.monotonic() - started
            self._stop.wait(max(0.0, self.interval_seconds - elapsed))

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="release-sweep", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
