from __future__ import annotations

from sqlalchemy.orm import Session

from backend.windpark import models
from backend.windpark.services import SettlementPeriodService

from conftest import OTHER_TENANT_ID, TENANT_ID, USER_ID


def _create(client, park_id: str, **overrides):
    payload = {"park_id": park_id, "year": 2025, "period_type": "ADVANCE"}
    payload.update(overrides)
    return client.post("/settlement-periods", json=payload)


def test_create_advance_period_builds_key(client, seed_park):
    response = _create(client, seed_park["park_id"], advance_interval="QUARTERLY", month=3)

    assert response.status_code == 201, response.json()
    data = response.json()
    assert data["period_key"] == "2025-ADVANCE-03"
    assert data["status"] == "OPEN"
    assert data["advance_interval"] == "QUARTERLY"
    assert data["created_by"] == USER_ID


def test_create_advance_without_interval_defaults_to_yearly(client, seed_park):
    response = _create(client, seed_park["park_id"])

    assert response.status_code == 201, response.json()
    data = response.json()
    assert data["period_key"] == "2025-ADVANCE-YR"
    assert data["advance_interval"] == "YEARLY"
    assert data["month"] is None


def test_create_reuses_open_period(client, seed_park):
    first = _create(client, seed_park["park_id"], period_type="FINAL")
    second = _create(client, seed_park["park_id"], period_type="FINAL")

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["period_key"] == "2025-FINAL"


def test_create_rejects_existing_closed_period(client, db_session, seed_park):
    created = _create(client, seed_park["park_id"], period_type="FINAL").json()
    period = db_session.get(models.SettlementPeriod, created["id"])
    period.status = models.SettlementPeriodStatus.CLOSED
    db_session.commit()

    response = _create(client, seed_park["park_id"], period_type="FINAL")

    assert response.status_code == 409
    assert "CLOSED" in response.json()["detail"]


def test_create_replaces_cancelled_period(client, seed_park):
    original = _create(client, seed_park["park_id"], period_type="FINAL").json()
    cancel = client.patch(
        f"/settlement-periods/{original['id']}/status", json={"status": "CANCELLED"}
    )
    assert cancel.status_code == 200, cancel.json()

    response = _create(client, seed_park["park_id"], period_type="FINAL")

    assert response.status_code == 201
    assert response.json()["id"] != original["id"]
    assert response.json()["status"] == "OPEN"
    missing = client.get(f"/settlement-periods/{original['id']}")
    assert missing.status_code == 404


def test_create_validates_month_and_interval(client, seed_park):
    park_id = seed_park["park_id"]

    final_with_month = _create(client, park_id, period_type="FINAL", month=4)
    monthly_without_month = _create(client, park_id, advance_interval="MONTHLY")
    yearly_with_month = _create(client, park_id, advance_interval="YEARLY", month=1)
    month_out_of_range = _create(client, park_id, advance_interval="MONTHLY", month=13)

    assert final_with_month.status_code == 400
    assert monthly_without_month.status_code == 400
    assert yearly_with_month.status_code == 400
    assert month_out_of_range.status_code == 422


def test_create_for_unknown_or_foreign_park_returns_404(client, park_factory):
    foreign = park_factory(tenant_id=OTHER_TENANT_ID)

    unknown = _create(client, "00000000-0000-0000-0000-000000000000")
    other_tenant = _create(client, foreign["park_id"])

    assert unknown.status_code == 404
    assert other_tenant.status_code == 404


def test_periods_are_scoped_to_tenant(client, seed_park):
    created = _create(client, seed_park["park_id"]).json()

    response = client.get(
        f"/settlement-periods/{created['id']}",
        headers={"X-Tenant-ID": OTHER_TENANT_ID},
    )
    listing = client.get("/settlement-periods", headers={"X-Tenant-ID": OTHER_TENANT_ID})

    assert response.status_code == 404
    assert listing.json()["total"] == 0


def test_list_filters_by_year_and_type(client, seed_park):
    park_id = seed_park["park_id"]
    _create(client, park_id, period_type="FINAL")
    _create(client, park_id, advance_interval="MONTHLY", month=1)
    _create(client, park_id, year=2024, period_type="FINAL")

    response = client.get(
        "/settlement-periods",
        params={"park_id": park_id, "year": 2025, "period_type": "FINAL"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert [item["period_key"] for item in data["items"]] == ["2025-FINAL"]

    everything = client.get("/settlement-periods", params={"park_id": park_id}).json()
    assert everything["total"] == 3


def test_status_transitions_follow_lifecycle(client, seed_park):
    period = _create(client, seed_park["park_id"], period_type="FINAL").json()
    url = f"/settlement-periods/{period['id']}/status"

    skip_ahead = client.patch(url, json={"status": "APPROVED"})
    assert skip_ahead.status_code == 400
    assert "OPEN" in skip_ahead.json()["detail"]

    started = client.patch(url, json={"status": "IN_PROGRESS"})
    assert started.status_code == 200

    review_without_calculation = client.patch(url, json={"status": "PENDING_REVIEW"})
    assert review_without_calculation.status_code == 400
    assert "run calculation first" in review_without_calculation.json()["detail"]


def test_review_and_approval_record_reviewer(client, seed_park):
    period = _create(client, seed_park["park_id"], period_type="FINAL").json()
    url = f"/settlement-periods/{period['id']}/status"

    calculated = client.post(
        f"/settlement-periods/{period['id']}/calculate", json={"total_revenue": "300000"}
    )
    assert calculated.status_code == 200, calculated.json()

    assert client.patch(url, json={"status": "PENDING_REVIEW"}).status_code == 200
    approved = client.patch(url, json={"status": "APPROVED", "notes": "geprueft"})

    assert approved.status_code == 200
    data = approved.json()
    assert data["status"] == "APPROVED"
    assert data["reviewed_by"] == USER_ID
    assert data["reviewed_at"] is not None
    assert data["review_notes"] == "geprueft"

    closed = client.patch(url, json={"status": "CLOSED"})
    assert closed.status_code == 200
    reopened = client.patch(url, json={"status": "OPEN"})
    assert reopened.status_code == 400


def test_delete_only_open_periods(client, seed_park):
    open_period = _create(client, seed_park["park_id"], period_type="FINAL").json()
    busy_period = _create(client, seed_park["park_id"]).json()
    client.patch(
        f"/settlement-periods/{busy_period['id']}/status", json={"status": "IN_PROGRESS"}
    )

    deleted = client.delete(f"/settlement-periods/{open_period['id']}")
    refused = client.delete(f"/settlement-periods/{busy_period['id']}")

    assert deleted.status_code == 204
    assert refused.status_code == 400
    assert client.get(f"/settlement-periods/{open_period['id']}").status_code == 404


def test_bulk_create_quarterly_periods(client, seed_park):
    park_id = seed_park["park_id"]
    _create(client, park_id, advance_interval="QUARTERLY", month=6)

    response = client.post(
        "/settlement-periods/bulk",
        json={"park_id": park_id, "year": 2025, "advance_interval": "QUARTERLY"},
    )

    assert response.status_code == 201, response.json()
    data = response.json()
    assert sorted(item["period_key"] for item in data["created"]) == [
        "2025-ADVANCE-03",
        "2025-ADVANCE-09",
        "2025-ADVANCE-12",
        "2025-FINAL",
    ]
    assert data["skipped_keys"] == ["2025-ADVANCE-06"]

    repeated = client.post(
        "/settlement-periods/bulk",
        json={"park_id": park_id, "year": 2025, "advance_interval": "QUARTERLY"},
    )
    assert repeated.status_code == 409


def test_bulk_create_rejects_yearly_interval(client, seed_park):
    response = client.post(
        "/settlement-periods/bulk",
        json={"park_id": seed_park["park_id"], "year": 2025, "advance_interval": "YEARLY"},
    )

    assert response.status_code == 400


def test_creation_is_audited(client, db_session, seed_park):
    created = _create(client, seed_park["park_id"], period_type="FINAL").json()

    events = (
        db_session.query(models.SettlementAuditEvent)
        .filter(models.SettlementAuditEvent.event_type == "settlement_period.created")
        .all()
    )

    assert len(events) == 1
    assert events[0].outcome == "success"
    assert events[0].tenant_id == created["tenant_id"]
    assert events[0].tags["period_key"] == "2025-FINAL"


def test_quarterly_advance_requires_quarter_end_month(client, seed_park):
    first_month = _create(client, seed_park["park_id"], advance_interval="QUARTERLY", month=1)
    quarter_end = _create(client, seed_park["park_id"], advance_interval="QUARTERLY", month=3)

    assert first_month.status_code == 400
    assert "3, 6, 9, 12" in first_month.json()["detail"]
    assert quarter_end.status_code == 201
    assert quarter_end.json()["period_key"] == "2025-ADVANCE-03"


def test_advance_interval_is_fixed_per_park_and_year(client, seed_park):
    park_id = seed_park["park_id"]
    quarterly = _create(client, park_id, advance_interval="QUARTERLY", month=3).json()

    same_key = _create(client, park_id, advance_interval="MONTHLY", month=3)
    other_month = _create(client, park_id, advance_interval="MONTHLY", month=1)
    yearly = _create(client, park_id)
    bulk = client.post(
        "/settlement-periods/bulk",
        json={"park_id": park_id, "year": 2025, "advance_interval": "MONTHLY"},
    )
    next_year = _create(client, park_id, year=2026, advance_interval="MONTHLY", month=1)

    assert same_key.status_code == 409
    assert "QUARTERLY" in same_key.json()["detail"]
    assert other_month.status_code == 409
    assert yearly.status_code == 409
    assert bulk.status_code == 409
    assert next_year.status_code == 201

    client.patch(
        f"/settlement-periods/{quarterly['id']}/status", json={"status": "CANCELLED"}
    )
    monthly = _create(client, park_id, advance_interval="MONTHLY", month=3)

    assert monthly.status_code == 201
    assert monthly.json()["advance_interval"] == "MONTHLY"
    assert monthly.json()["id"] != quarterly["id"]


def _insert_competing_period(db_session, park_id: str, status) -> str:
    with Session(bind=db_session.get_bind()) as other:
        period = models.SettlementPeriod(
            tenant_id=TENANT_ID,
            park_id=park_id,
            period_key="2025-FINAL",
            year=2025,
            period_type=models.SettlementPeriodType.FINAL,
            status=status,
        )
        other.add(period)
        other.commit()
        return period.id


def _miss_first_lookup(monkeypatch) -> None:
    original = SettlementPeriodService._find_by_key
    calls = []

    def _lookup(db, *args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return original(db, *args)

    monkeypatch.setattr(SettlementPeriodService, "_find_by_key", staticmethod(_lookup))


def test_concurrently_created_period_is_reused(client, db_session, monkeypatch, seed_park):
    winner_id = _insert_competing_period(
        db_session, seed_park["park_id"], models.SettlementPeriodStatus.OPEN
    )
    _miss_first_lookup(monkeypatch)

    response = _create(client, seed_park["park_id"], period_type="FINAL")

    assert response.status_code == 200, response.json()
    assert response.json()["id"] == winner_id
    assert client.get(f"/settlement-periods/{winner_id}").status_code == 200
    assert (
        db_session.query(models.SettlementPeriod)
        .filter(models.SettlementPeriod.park_id == seed_park["park_id"])
        .count()
        == 1
    )


def test_concurrently_closed_period_conflicts(client, db_session, monkeypatch, seed_park):
    _insert_competing_period(
        db_session, seed_park["park_id"], models.SettlementPeriodStatus.CLOSED
    )
    _miss_first_lookup(monkeypatch)

    response = _create(client, seed_park["park_id"], period_type="FINAL")

    assert response.status_code == 409
    assert "created concurrently" in response.json()["detail"]
