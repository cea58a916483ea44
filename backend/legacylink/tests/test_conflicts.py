from datetime import timedelta

import pytest

from legacylink import models, schemas
from legacylink.clock import ensure_utc
from legacylink.services import conflicts
from legacylink.services.errors import InvalidState

from .conftest import NOW, create_owner, create_owner_with_headers


def _designation(primary=(), contingent=()):
    return schemas.BeneficiaryDesignation(
        primary=[schemas.Beneficiary(name=n) for n in primary],
        contingent=[schemas.Beneficiary(name=n) for n in contingent],
    )


def test_names_compare_case_insensitively():
    findings = conflicts.detect(_designation(["Ana", "Ben"]), ["ana", "BEN"])
    assert findings == []


def test_missing_name_produces_one_finding():
    findings = conflicts.detect(_designation(["Ana", "Ben"]), ["ana"])
    assert len(findings) == 1
    finding = findings[0]
    assert finding.conflict_type == conflicts.BENEFICIARY_MISMATCH
    assert finding.missing_beneficiaries == ["ben"]
    assert finding.asset_beneficiaries == ["ana", "ben"]
    assert finding.reference_beneficiaries == ["ana"]


def test_empty_designation_has_no_findings():
    assert conflicts.detect(_designation(), ["ana"]) == []


def test_contingent_beneficiaries_are_checked():
    findings = conflicts.detect(_designation(contingent=["Cleo"]), ["ana"])
    assert findings[0].missing_beneficiaries == ["cleo"]


def test_check_is_one_sided():
    assert conflicts.detect(_designation(["Ana"]), ["Ana", "Ben", "Cleo"]) == []


def _asset(db, owner, primary):
    asset = conflicts.create_asset(
        db,
        owner,
        schemas.AssetCreate(
            asset_type="financial",
            asset_title="Brokerage",
            beneficiary_designation=_designation(primary),
        ),
        now=NOW,
    )
    db.commit()
    return asset


def test_resolving_last_record_resolves_asset(db):
    owner = create_owner(db)
    asset = _asset(db, owner, ["Ana", "Ben"])
    findings = conflicts.check_asset_conflicts(db, asset, ["Ana"], now=NOW)
    db.commit()
    assert len(findings) == 1
    assert asset.conflict_status == "conflict"

    record = conflicts.list_conflicts(db, owner, unresolved_only=True)[0]
    assert record.severity == "medium"
    assert record.details["missing_beneficiaries"] == ["ben"]

    conflicts.update_conflict_status(db, record, "in_progress")
    conflicts.resolve_conflict(db, record, "Updated will", now=NOW)
    db.commit()
    assert record.status == "resolved"
    assert asset.conflict_status == "resolved"
    with pytest.raises(InvalidState):
        conflicts.resolve_conflict(db, record, now=NOW)
    with pytest.raises(InvalidState):
        conflicts.update_conflict_status(db, record, "unresolved")


def test_clean_check_marks_no_conflict(db):
    owner = create_owner(db)
    asset = _asset(db, owner, ["Ana"])
    conflicts.check_asset_conflicts(db, asset, ["ANA "], now=NOW)
    db.commit()
    assert asset.conflict_status == "no_conflict"
    assert conflicts.list_conflicts(db, owner) == []


def test_listing_orders_by_severity_then_newest(db):
    owner = create_owner(db)
    for severity, age in [("low", 1), ("high", 5), ("medium", 2), ("high", 0)]:
        db.add(
            models.ConflictRecord(
                owner_id=owner.id,
                conflict_type="beneficiary_mismatch",
                description=severity,
                severity=severity,
                detected_at=NOW - timedelta(days=age),
            )
        )
    db.commit()
    records = conflicts.list_conflicts(db, owner)
    assert [(r.severity, (NOW - ensure_utc(r.detected_at)).days) for r in records] == [
        ("high", 0),
        ("high", 5),
        ("medium", 2),
        ("low", 1),
    ]


def test_summary_counts(db):
    owner = create_owner(db)
    for severity, age, status in [("high", 1, "unresolved"), ("low", 45, "resolved")]:
        db.add(
            models.ConflictRecord(
                owner_id=owner.id,
                conflict_type="beneficiary_mismatch",
                description="x",
                severity=severity,
                status=status,
                detected_at=NOW - timedelta(days=age),
            )
        )
    db.commit()
    summary = conflicts.summarize_conflicts(conflicts.list_conflicts(db, owner), now=NOW)
    assert summary.total_conflicts == 2
    assert summary.unresolved_conflicts == 1
    assert summary.high_severity_conflicts == 1
    assert summary.recent_conflicts == 1
    assert summary.conflicts_by_type == {"beneficiary_mismatch": 2}


def test_asset_conflict_routes(client):
    _, headers = create_owner_with_headers()
    asset = client.post(
        "/api/assets",
        json={
            "asset_type": "financial",
            "asset_title": "401k",
            "beneficiary_designation": {
                "primary": [{"name": "Ana", "share": 60}, {"name": "Ben", "share": 40}],
            },
        },
        headers=headers,
    )
    assert asset.status_code == 201
    asset = asset.json()
    assert asset["conflict_status"] == "unchecked"

    check = client.post(
        f"/api/assets/{asset['id']}/check-conflicts",
        json={"will_beneficiaries": [{"name": "ana"}]},
        headers=headers,
    )
    assert check.status_code == 200
    body = check.json()
    assert body["conflict_status"] == "conflict"
    assert body["conflicts"][0]["missing_beneficiaries"] == ["ben"]

    unresolved = client.get("/api/conflicts/unresolved", headers=headers).json()
    assert len(unresolved) == 1
    summary = client.get("/api/conflicts/summary", headers=headers).json()
    assert summary["unresolved_conflicts"] == 1

    conflict_id = unresolved[0]["id"]
    resolved = client.put(
        f"/api/conflicts/{conflict_id}/resolve",
        json={"resolution_notes": "Will amended"},
        headers=headers,
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "resolved"
    again = client.put(f"/api/conflicts/{conflict_id}/resolve", json={}, headers=headers)
    assert again.status_code == 409
    assert client.get(f"/api/assets/{asset['id']}", headers=headers).json()["conflict_status"] == "resolved"

    updated = client.put(
        f"/api/assets/{asset['id']}/beneficiaries",
        json={"beneficiary_designation": {"primary": [{"name": "Ana"}]}},
        headers=headers,
    )
    assert updated.json()["conflict_status"] == "unchecked"


def test_conflict_of_other_owner_is_hidden(client):
    _, headers = create_owner_with_headers()
    _, other_headers = create_owner_with_headers()
    asset = client.post(
        "/api/assets",
        json={
            "asset_type": "digital",
            "asset_title": "Photos",
            "beneficiary_designation": {"primary": [{"name": "Ana"}]},
        },
        headers=headers,
    ).json()
    client.post(
        f"/api/assets/{asset['id']}/check-conflicts",
        json={"will_beneficiaries": []},
        headers=headers,
    )
    conflict_id = client.get("/api/conflicts", headers=headers).json()[0]["id"]
    assert client.get(f"/api/conflicts/{conflict_id}", headers=other_headers).status_code == 404
    assert client.get(f"/api/assets/{asset['id']}", headers=other_headers).status_code == 404


def test_asset_filters_summary_and_delete(client):
    _, headers = create_owner_with_headers()
    house = client.post(
        "/api/assets",
        json={
            "asset_type": "real_estate",
            "asset_title": "House",
            "asset_category": "property",
            "estimated_value": 250000,
            "beneficiary_designation": {"primary": [{"name": "Ana"}]},
        },
        headers=headers,
    ).json()
    client.post(
        "/api/assets",
        json={"asset_type": "financial", "asset_title": "Savings", "estimated_value": 1000.5},
        headers=headers,
    )
    client.post(
        f"/api/assets/{house['id']}/check-conflicts",
        json={"will_beneficiaries": [{"name": "Ben"}]},
        headers=headers,
    )

    by_type = client.get("/api/assets", params={"asset_type": "real_estate"}, headers=headers)
    assert [a["id"] for a in by_type.json()] == [house["id"]]
    by_category = client.get(
        "/api/assets", params={"asset_category": "property"}, headers=headers
    ).json()
    assert [a["id"] for a in by_category] == [house["id"]]

    summary = client.get("/api/assets/summary", headers=headers).json()
    assert summary == {
        "total_assets": 2,
        "total_value": 251000.5,
        "assets_by_type": {"real_estate": 1, "financial": 1},
        "conflict_count": 1,
        "reviewed_count": 0,
        "with_beneficiaries": 1,
    }

    deleted = client.delete(f"/api/assets/{house['id']}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/assets/{house['id']}", headers=headers).status_code == 404
    assert client.delete(f"/api/assets/{house['id']}", headers=headers).status_code == 404
    [record] = client.get("/api/conflicts", headers=headers).json()
    assert record["asset_id"] is None
    assert record["status"] == "unresolved"


def test_manual_conflict_create_and_delete(client):
    _, headers = create_owner_with_headers()
    _, other_headers = create_owner_with_headers()
    asset = client.post(
        "/api/assets",
        json={"asset_type": "business", "asset_title": "Bakery"},
        headers=headers,
    ).json()

    created = client.post(
        "/api/conflicts",
        json={
            "asset_id": asset["id"],
            "conflict_type": "ownership_dispute",
            "description": "Partner agreement names a different successor",
            "severity": "high",
        },
        headers=headers,
    )
    assert created.status_code == 201
    record = created.json()
    assert record["status"] == "unresolved"
    assert record["severity"] == "high"
    asset_url = f"/api/assets/{asset['id']}"
    assert client.get(asset_url, headers=headers).json()["conflict_status"] == "conflict"

    foreign = client.post(
        "/api/conflicts",
        json={
            "asset_id": asset["id"],
            "conflict_type": "ownership_dispute",
            "description": "Not mine",
        },
        headers=other_headers,
    )
    assert foreign.status_code == 404
    assert client.delete(f"/api/conflicts/{record['id']}", headers=other_headers).status_code == 404

    assert client.delete(f"/api/conflicts/{record['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/conflicts/{record['id']}", headers=headers).status_code == 404
    assert client.get(asset_url, headers=headers).json()["conflict_status"] == "unchecked"
