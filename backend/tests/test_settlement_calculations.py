from __future__ import annotations

from decimal import Decimal

from backend.windpark import models


def _create_period(client, park_id: str, **overrides) -> dict:
    payload = {"park_id": park_id, "year": 2025, "period_type": "FINAL"}
    payload.update(overrides)
    response = client.post("/settlement-periods", json=payload)
    assert response.status_code == 201, response.json()
    return response.json()


def test_calculate_final_period_saves_aggregates(client, seed_park):
    period = _create_period(client, seed_park["park_id"])

    response = client.post(
        f"/settlement-periods/{period['id']}/calculate",
        json={"total_revenue": "300000"},
    )

    assert response.status_code == 200, response.json()
    data = response.json()
    assert data["saved"] is True
    assert data["period"]["status"] == "IN_PROGRESS"
    assert data["period"]["calculated_at"] is not None
    assert Decimal(data["period"]["total_revenue"]) == Decimal("300000")
    assert Decimal(data["period"]["total_minimum_rent"]) == Decimal("30000")
    assert Decimal(data["period"]["total_actual_rent"]) == Decimal("33000")

    calculation = data["calculation"]
    assert calculation["period_type"] == "FINAL"
    assert calculation["phasing_strategy"] == "pro_rata_months"
    assert len(calculation["turbines"]) == 2
    item = calculation["items"][0]
    assert item["lease_id"] == seed_park["lease_id"]
    assert Decimal(item["total_payment"]) == Decimal("33000")
    assert Decimal(item["final_payment"]) == Decimal("33000")
    assert item["is_credit"] is True


def test_calculate_uses_revenue_stored_on_period(client, seed_park):
    period = _create_period(client, seed_park["park_id"], total_revenue="100000")

    response = client.post(f"/settlement-periods/{period['id']}/calculate")

    assert response.status_code == 200, response.json()
    totals = response.json()["calculation"]["totals"]
    # 100000 / 2 * 12 % and * 8 % both stay below the 15000 floor
    assert Decimal(totals["total_revenue_share"]) == Decimal("10000")
    assert Decimal(totals["total_payment"]) == Decimal("30000")


def test_calculate_advance_period(client, seed_park):
    period = _create_period(
        client, seed_park["park_id"], period_type="ADVANCE", advance_interval="QUARTERLY", month=3
    )

    response = client.post(f"/settlement-periods/{period['id']}/calculate")

    assert response.status_code == 200, response.json()
    calculation = response.json()["calculation"]
    assert calculation["period_type"] == "ADVANCE"
    assert calculation["advance_interval"] == "QUARTERLY"
    item = calculation["items"][0]
    assert Decimal(item["monthly_baseline"]) == Decimal("2500")
    assert Decimal(item["advance_amount"]) == Decimal("7500")
    assert Decimal(item["taxable_amount"]) == Decimal("6750")
    assert Decimal(item["exempt_amount"]) == Decimal("750")


def test_preview_does_not_change_period(client, db_session, seed_park):
    period = _create_period(client, seed_park["park_id"])

    response = client.post(
        f"/settlement-periods/{period['id']}/calculate",
        json={"total_revenue": "300000", "save_result": False},
    )

    assert response.status_code == 200
    assert response.json()["saved"] is False
    stored = db_session.get(models.SettlementPeriod, period["id"])
    db_session.refresh(stored)
    assert stored.status == models.SettlementPeriodStatus.OPEN
    assert stored.calculated_at is None
    assert stored.total_actual_rent is None


def test_calculation_refused_for_closed_or_cancelled_period(client, db_session, seed_park):
    period = _create_period(client, seed_park["park_id"])
    stored = db_session.get(models.SettlementPeriod, period["id"])
    stored.status = models.SettlementPeriodStatus.CLOSED
    db_session.commit()

    saving = client.post(f"/settlement-periods/{period['id']}/calculate")
    preview = client.post(
        f"/settlement-periods/{period['id']}/calculate", json={"save_result": False}
    )

    assert saving.status_code == 400
    assert preview.status_code == 400
    assert "CLOSED" in saving.json()["detail"]


def test_saving_locked_during_review_but_preview_allowed(client, seed_park):
    period = _create_period(client, seed_park["park_id"])
    url = f"/settlement-periods/{period['id']}/calculate"
    assert client.post(url, json={"total_revenue": "300000"}).status_code == 200
    assert (
        client.patch(
            f"/settlement-periods/{period['id']}/status", json={"status": "PENDING_REVIEW"}
        ).status_code
        == 200
    )

    saving = client.post(url, json={"total_revenue": "310000"})
    preview = client.post(url, json={"total_revenue": "310000", "save_result": False})

    assert saving.status_code == 400
    assert preview.status_code == 200
    assert preview.json()["period"]["status"] == "PENDING_REVIEW"
    assert Decimal(preview.json()["period"]["total_revenue"]) == Decimal("300000")


def test_inactive_turbines_and_leases_are_ignored(client, db_session, seed_park):
    turbine = db_session.get(models.Turbine, seed_park["turbine_ids"][1])
    turbine.status = models.TurbineStatus.DECOMMISSIONED
    db_session.add(
        models.Lease(
            tenant_id=turbine.park.tenant_id,
            park_id=seed_park["park_id"],
            lessor_name="Erbengemeinschaft Clausen",
            status=models.LeaseStatus.TERMINATED,
            pool_area_sqm=Decimal("5000"),
        )
    )
    db_session.commit()
    period = _create_period(client, seed_park["park_id"])

    response = client.post(
        f"/settlement-periods/{period['id']}/calculate", json={"total_revenue": "300000"}
    )

    calculation = response.json()["calculation"]
    assert [figure["designation"] for figure in calculation["turbines"]] == ["WEA 01"]
    assert len(calculation["items"]) == 1
    # The remaining turbine receives the whole revenue at 12 %
    assert Decimal(calculation["items"][0]["total_payment"]) == Decimal("36000")


def test_calculation_requires_tenant_header(client, seed_park):
    period = _create_period(client, seed_park["park_id"])

    response = client.post(
        f"/settlement-periods/{period['id']}/calculate",
        headers={"X-Tenant-ID": ""},
    )
    invalid = client.post(
        f"/settlement-periods/{period['id']}/calculate",
        headers={"X-Tenant-ID": "not-a-tenant"},
    )

    assert response.status_code == 401
    assert invalid.status_code == 401
