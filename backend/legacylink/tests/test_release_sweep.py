import threading
import time
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from legacylink import models, notify, tasks
from legacylink.services import access_grants, release_sweep
from legacylink.services.errors import PersistenceError

from .conftest import (
    NOW,
    RecordingNotifier,
    TestingSessionLocal,
    create_item,
    create_owner,
    create_owner_with_headers,
    create_trustee,
)


def _sweep(notifier, *, now=NOW, session_factory=TestingSessionLocal, stop_event=None):
    return release_sweep.run_sweep_once(
        session_factory, clock=lambda: now, notifier=notifier, stop_event=stop_event
    )


def _failing_factory(owner_id):
    """Session factory whose commit fails once the given owner is loaded."""

    def factory():
        session = TestingSessionLocal()
        real_commit = session.commit

        def commit():
            if any(
                isinstance(obj, models.Owner) and obj.id == owner_id
                for obj in session.identity_map.values()
            ):
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            real_commit()

        session.commit = commit
        return session

    return factory


def _setup_overdue_owner(db, **owner_kwargs):
    owner = create_owner(db, days_since_check_in=31, **owner_kwargs)
    trustee = create_trustee(db, owner)
    item = create_item(db, owner)
    access_grants.create_grant(db, item, trustee, access_trigger="inactivity", now=NOW)
    db.commit()
    return owner.id, trustee.id, item.id


def _grant_open(item_id, trustee_id):
    session = TestingSessionLocal()
    try:
        grant = (
            session.query(models.AccessGrant)
            .filter(
                models.AccessGrant.item_id == item_id,
                models.AccessGrant.trustee_id == trustee_id,
            )
            .one()
        )
        return grant.access_granted
    finally:
        session.close()


def _trustee(trustee_id):
    session = TestingSessionLocal()
    try:
        return session.get(models.Trustee, trustee_id)
    finally:
        session.close()


def test_overdue_owner_notifies_once_and_releases(db):
    owner_id, trustee_id, item_id = _setup_overdue_owner(db)
    notifier = RecordingNotifier()

    first = _sweep(notifier)
    second = _sweep(notifier, now=NOW + timedelta(days=1))

    assert [s for s in notifier.sent if s[0] == trustee_id] == [
        (trustee_id, "release_notice")
    ]
    assert _trustee(trustee_id).notified is True
    assert _grant_open(item_id, trustee_id) is True
    assert first.owners_processed >= 1
    assert owner_id not in {e.owner_id for e in second.errors}


def test_active_owner_is_left_alone(db):
    owner = create_owner(db, days_since_check_in=30)
    trustee = create_trustee(db, owner)
    item = create_item(db, owner)
    access_grants.create_grant(db, item, trustee, access_trigger="inactivity", now=NOW)
    db.commit()
    notifier = RecordingNotifier()
    _sweep(notifier)
    assert trustee.id not in {s[0] for s in notifier.sent}
    assert _grant_open(item.id, trustee.id) is False


def test_date_grant_released_for_active_owner(db):
    owner = create_owner(db)
    trustee = create_trustee(db, owner)
    item = create_item(db, owner)
    access_grants.create_grant(
        db,
        item,
        trustee,
        access_trigger="date",
        trigger_date=NOW - timedelta(days=1),
        now=NOW - timedelta(days=10),
    )
    db.commit()
    _sweep(RecordingNotifier())
    assert _grant_open(item.id, trustee.id) is True


def test_date_grant_waits_for_trigger_date(db):
    owner = create_owner(db)
    trustee = create_trustee(db, owner)
    item = create_item(db, owner)
    trigger_date = datetime(2024, 1, 1, tzinfo=timezone.utc)
    access_grants.create_grant(
        db, item, trustee, access_trigger="date", trigger_date=trigger_date, now=NOW
    )
    db.commit()

    _sweep(RecordingNotifier(), now=datetime(2023, 12, 31, tzinfo=timezone.utc))
    assert _grant_open(item.id, trustee.id) is False

    _sweep(RecordingNotifier(), now=datetime(2024, 1, 2, tzinfo=timezone.utc))
    assert _grant_open(item.id, trustee.id) is True


def test_failing_owner_is_isolated_and_retried(db):
    a_owner, a_trustee, a_item = _setup_overdue_owner(db)
    b_owner, b_trustee, b_item = _setup_overdue_owner(db)

    report = _sweep(RecordingNotifier(), session_factory=_failing_factory(a_owner))

    assert [e.owner_id for e in report.errors] == [a_owner]
    assert report.owners_failed == 1
    assert _grant_open(a_item, a_trustee) is False
    assert _trustee(a_trustee).notified is False
    assert _grant_open(b_item, b_trustee) is True
    assert _trustee(b_trustee).notified is True

    retry = _sweep(RecordingNotifier())
    assert retry.owners_failed == 0
    assert _grant_open(a_item, a_trustee) is True
    assert _trustee(a_trustee).notified is True


def test_owner_unit_wraps_storage_errors(db):
    owner_id, _, _ = _setup_overdue_owner(db)
    with pytest.raises(PersistenceError) as excinfo:
        release_sweep._run_owner_unit(
            _failing_factory(owner_id), owner_id, now=NOW, notifier=RecordingNotifier()
        )
    assert excinfo.value.owner_id == owner_id


def test_delivery_failure_is_retried_next_sweep(db):
    _, trustee_id, item_id = _setup_overdue_owner(db)

    report = _sweep(RecordingNotifier(fail_for={trustee_id}))
    assert report.notifications_failed >= 1
    assert _trustee(trustee_id).notified is False
    assert _grant_open(item_id, trustee_id) is True

    _sweep(RecordingNotifier())
    assert _trustee(trustee_id).notified is True


def test_revoked_grant_survives_sweep(db):
    owner = create_owner(db, days_since_check_in=90)
    trustee = create_trustee(db, owner)
    item = create_item(db, owner)
    access_grants.create_grant(db, item, trustee, access_trigger="inactivity", now=NOW)
    access_grants.revoke(db, item, trustee, now=NOW)
    db.commit()
    _sweep(RecordingNotifier())
    assert _grant_open(item.id, trustee.id) is False


def test_stop_event_halts_after_in_flight_owner(db):
    base = NOW.replace(year=2000)
    first_owner, first_trustee, first_item = _setup_overdue_owner(db, created_at=base)
    _, second_trustee, second_item = _setup_overdue_owner(
        db, created_at=base + timedelta(days=1)
    )
    stop = threading.Event()

    class StoppingNotifier(RecordingNotifier):
        def send(self, trustee, message_kind):
            super().send(trustee, message_kind)
            if trustee.id == first_trustee:
                stop.set()

    report = _sweep(StoppingNotifier(), stop_event=stop)

    assert report.owners_processed == 1
    assert _grant_open(first_item, first_trustee) is True
    assert _trustee(first_trustee).notified is True
    assert _grant_open(second_item, second_trustee) is False
    assert _trustee(second_trustee).notified is False


def test_scheduler_runs_and_stops(db):
    scheduler = release_sweep.ReleaseScheduler(
        3600,
        session_factory=TestingSessionLocal,
        clock=lambda: NOW,
        notifier=RecordingNotifier(),
    )
    scheduler.start()
    deadline = time.monotonic() + 10
    while scheduler.last_report is None and time.monotonic() < deadline:
        time.sleep(0.05)
    scheduler.stop(timeout=10)
    assert scheduler.last_report is not None
    assert not scheduler.running


def test_notifier_crash_for_one_owner_does_not_abort_sweep(db):
    a_owner, a_trustee, a_item = _setup_overdue_owner(db)
    b_owner, b_trustee, b_item = _setup_overdue_owner(db)

    report = _sweep(RecordingNotifier(crash_for={a_trustee}))

    assert report.finished_at is not None
    assert report.notifications_failed >= 1
    assert _trustee(a_trustee).notified is False
    assert _trustee(b_trustee).notified is True
    assert _grant_open(b_item, b_trustee) is True

    _sweep(RecordingNotifier())
    assert _trustee(a_trustee).notified is True


def test_unexpected_error_in_owner_unit_is_isolated(db, monkeypatch):
    a_owner, a_trustee, a_item = _setup_overdue_owner(db)
    b_owner, b_trustee, b_item = _setup_overdue_owner(db)
    real_sweep_owner = release_sweep.sweep_owner

    def sweep_owner(db, owner, **kwargs):
        if owner.id == a_owner:
            raise KeyError("missing activity record")
        return real_sweep_owner(db, owner, **kwargs)

    monkeypatch.setattr(release_sweep, "sweep_owner", sweep_owner)
    report = _sweep(RecordingNotifier())

    [error] = [e for e in report.errors if e.owner_id == a_owner]
    assert "KeyError" in error.message
    assert _grant_open(a_item, a_trustee) is False
    assert _trustee(b_trustee).notified is True
    assert _grant_open(b_item, b_trustee) is True


def test_owner_unit_lets_invariant_violations_through(db, monkeypatch):
    owner_id, _, _ = _setup_overdue_owner(db)

    def broken_sweep_owner(db, owner, **kwargs):
        raise AssertionError("granted flag cleared")

    monkeypatch.setattr(release_sweep, "sweep_owner", broken_sweep_owner)
    with pytest.raises(AssertionError):
        release_sweep._run_owner_unit(
            TestingSessionLocal, owner_id, now=NOW, notifier=RecordingNotifier()
        )


def test_sweep_skips_declined_trustee(db):
    owner = create_owner(db, days_since_check_in=90)
    trustee = create_trustee(db, owner, verification_status="declined")
    item = create_item(db, owner)
    access_grants.create_grant(db, item, trustee, access_trigger="inactivity", now=NOW)
    db.commit()
    notifier = RecordingNotifier()

    _sweep(notifier)

    assert trustee.id not in {s[0] for s in notifier.sent}
    assert _trustee(trustee.id).notified is False
    assert _grant_open(item.id, trustee.id) is False


def test_scheduler_survives_failing_tick(db):
    calls = []

    def flaky_factory():
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("SELECT", {}, Exception("database unavailable"))
        return TestingSessionLocal()

    scheduler = release_sweep.ReleaseScheduler(
        0.05,
        session_factory=flaky_factory,
        clock=lambda: NOW,
        notifier=RecordingNotifier(),
    )
    scheduler.start()
    deadline = time.monotonic() + 10
    while scheduler.last_report is None and time.monotonic() < deadline:
        time.sleep(0.05)
    assert scheduler.running
    scheduler.stop(timeout=10)
    assert scheduler.failed_ticks == 1
    assert scheduler.last_report is not None


def test_scheduler_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        release_sweep.ReleaseScheduler(0)


def test_celery_task_returns_report():
    result = tasks.enqueue_release_sweep()
    assert "owners_processed" in result
    assert result["owners_failed"] == 0


def test_sweep_route_requires_operator(client, monkeypatch):
    monkeypatch.setenv("SWEEP_OPERATOR_EMAILS", "ops@ex.com")
    _, headers = create_owner_with_headers(days_since_check_in=45)
    trustee = client.post(
        "/api/trustees", json={"name": "Ana", "email": "ana@ex.com"}, headers=headers
    ).json()
    notify.EMAIL_OUTBOX.clear()

    resp = client.post("/api/sweep/run", headers=headers)
    assert resp.status_code == 403
    assert notify.EMAIL_OUTBOX == []
    listed = client.get("/api/trustees", headers=headers).json()
    assert listed[0]["id"] == trustee["id"]
    assert listed[0]["notified"] is False


def test_sweep_route(client, monkeypatch):
    operator_email = f"ops-{uuid.uuid4()}@ex.com"
    monkeypatch.setenv("SWEEP_OPERATOR_EMAILS", f"other@ex.com, {operator_email.upper()}")
    _, operator_headers = create_owner_with_headers(email=operator_email)
    _, headers = create_owner_with_headers(days_since_check_in=45)
    trustee = client.post(
        "/api/trustees", json={"name": "Ana", "email": "ana@ex.com"}, headers=headers
    ).json()
    notify.EMAIL_OUTBOX.clear()

    resp = client.post("/api/sweep/run", headers=operator_headers)
    assert resp.status_code == 200
    assert resp.json()["owners_failed"] == 0
    assert any(to == "ana@ex.com" for to, _, _ in notify.EMAIL_OUTBOX)
    listed = client.get("/api/trustees", headers=headers).json()
    assert listed[0]["id"] == trustee["id"]
    assert listed[0]["notified"] is True
