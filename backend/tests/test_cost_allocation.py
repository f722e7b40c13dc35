from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from backend.windpark import models
from backend.windpark.services import CostAllocationService
from backend.windpark.services.cost_allocation import _reference_date, distribute_with_remainder

from conftest import TENANT_ID


def _settled_final_period(client, park_id: str) -> dict:
    created = client.post(
        "/settlement-periods",
        json={"park_id": park_id, "year": 2025, "period_type": "FINAL"},
    )
    assert created.status_code == 201, created.json()
    period_id = created.json()["id"]
    calculated = client.post(
        f"/settlement-periods/{period_id}/calculate", json={"total_revenue": "300000"}
    )
    assert calculated.status_code == 200, calculated.json()
    return calculated.json()["period"]


def test_distribute_with_remainder_hands_out_leftover_cents():
    parts = distribute_with_remainder(
        Decimal("100.00"), {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")}
    )

    assert parts == {"a": Decimal("33.34"), "b": Decimal("33.33"), "c": Decimal("33.33")}
    assert sum(parts.values()) == Decimal("100.00")


def test_distribute_with_remainder_prefers_largest_remainder():
    parts = distribute_with_remainder(Decimal("10.00"), {"a": Decimal("1"), "b": Decimal("2")})

    assert parts == {"a": Decimal("3.33"), "b": Decimal("6.67")}


def test_distribute_with_remainder_handles_negative_and_empty_shares():
    negative = distribute_with_remainder(
        Decimal("-100.00"), {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")}
    )

    assert sum(negative.values()) == Decimal("-100.00")
    assert negative["a"] == Decimal("-33.34")
    assert distribute_with_remainder(Decimal("50"), {}) == {}
    assert distribute_with_remainder(Decimal("50"), {"a": Decimal("0")}) == {
        "a": Decimal("0.00")
    }


def test_settlement_of_network_park_allocates_costs_to_funds(
    client, db_session, seed_network_park
):
    period = _settled_final_period(client, seed_network_park["park_id"])

    response = client.post(
        f"/settlement-periods/{period['id']}/settlement-invoices",
        json={"initial_status": "SENT"},
    )

    assert response.status_code == 201, response.json()
    data = response.json()
    assert len(data["invoices"]) == 1
    allocation = data["allocation"]
    assert allocation["error"] is None
    assert allocation["allocation_id"] is not None
    assert allocation["period_label"] == "Nutzungsentgelt 2025"
    assert len(allocation["invoices"]) == 2

    year = date.today().year
    by_fund = {invoice["operator_fund_id"]: invoice for invoice in allocation["invoices"]}
    assert set(by_fund) == set(seed_network_park["fund_ids"])
    for invoice in by_fund.values():
        assert invoice["invoice_type"] == "INVOICE"
        assert invoice["status"] == "DRAFT"
        assert invoice["invoice_number"].startswith(f"RE-{year}-")
        assert Decimal(invoice["net_amount"]) == Decimal("16500")
        assert Decimal(invoice["tax_amount"]) == Decimal("2821.50")
        assert Decimal(invoice["gross_amount"]) == Decimal("19321.50")

    stored = db_session.get(models.CostAllocation, allocation["allocation_id"])
    assert stored.status == models.CostAllocationStatus.INVOICED
    assert stored.total_taxable == Decimal("29700.00")
    assert stored.total_exempt == Decimal("3300.00")
    assert stored.vat_rate_percent == Decimal("19.00")
    assert sorted(item.share_percentage for item in stored.items) == [
        Decimal("50.0000"),
        Decimal("50.0000"),
    ]

    fund_invoice = db_session.get(models.Invoice, allocation["invoices"][0]["id"])
    taxable_line, exempt_line = fund_invoice.items
    assert taxable_line.tax_type == models.TaxType.STANDARD
    assert taxable_line.tax_amount == Decimal("2821.50")
    assert exempt_line.tax_type == models.TaxType.EXEMPT
    assert exempt_line.tax_amount == Decimal("0.00")
    assert "steuerfrei gem. §4 Nr. 12 UStG" in exempt_line.description


def test_allocation_uses_configured_vat_rate(client, monkeypatch, seed_network_park):
    monkeypatch.setenv("SETTLEMENT_VAT_RATE_PERCENT", "7")
    period = _settled_final_period(client, seed_network_park["park_id"])

    response = client.post(f"/settlement-periods/{period['id']}/settlement-invoices")

    invoices = response.json()["allocation"]["invoices"]
    assert [Decimal(invoice["tax_amount"]) for invoice in invoices] == [
        Decimal("1039.50"),
        Decimal("1039.50"),
    ]


def test_invoiced_allocation_cannot_run_again(client, seed_network_park):
    period = _settled_final_period(client, seed_network_park["park_id"])
    client.post(f"/settlement-periods/{period['id']}/settlement-invoices")

    response = client.post(f"/settlement-periods/{period['id']}/cost-allocation")

    assert response.status_code == 400
    assert "already allocated" in response.json()["detail"]


def test_allocation_requires_network_company_park(client, seed_park):
    period = _settled_final_period(client, seed_park["park_id"])
    client.post(f"/settlement-periods/{period['id']}/settlement-invoices")

    response = client.post(f"/settlement-periods/{period['id']}/cost-allocation")

    assert response.status_code == 400
    assert "network company" in response.json()["detail"]


def test_allocation_requires_credited_payments(client, seed_network_park):
    period = _settled_final_period(client, seed_network_park["park_id"])

    response = client.post(f"/settlement-periods/{period['id']}/cost-allocation")

    assert response.status_code == 400
    assert response.json()["detail"] == "No credited lease payments to allocate"


def test_allocation_failure_keeps_credit_notes(
    client, db_session, monkeypatch, caplog, seed_network_park
):
    period = _settled_final_period(client, seed_network_park["park_id"])

    def _fail(*args, **kwargs):
        raise RuntimeError("fund register unavailable")

    monkeypatch.setattr(CostAllocationService, "allocate_period", _fail)
    with caplog.at_level(logging.WARNING):
        response = client.post(f"/settlement-periods/{period['id']}/settlement-invoices")

    assert response.status_code == 201, response.json()
    data = response.json()
    assert len(data["invoices"]) == 1
    assert data["allocation"] == {
        "allocation_id": None,
        "period_label": None,
        "invoices": [],
        "error": "fund register unavailable",
    }
    assert "Cost allocation for settlement period" in caplog.text

    db_session.expire_all()
    stored = db_session.get(models.SettlementPeriod, period["id"])
    assert stored.invoiced_at is not None
    assert db_session.query(models.CostAllocation).count() == 0

    monkeypatch.undo()
    retried = client.post(f"/settlement-periods/{period['id']}/cost-allocation")

    assert retried.status_code == 201, retried.json()
    body = retried.json()
    assert body["allocation"]["status"] == "INVOICED"
    assert Decimal(body["allocation"]["total_amount"]) == Decimal("33000")
    assert len(body["invoices"]) == 2


def test_fund_weights_follow_ownership_on_reference_date(db_session, seed_network_park):
    first_turbine, _ = seed_network_park["turbine_ids"]
    first_fund, second_fund = seed_network_park["fund_ids"]
    previous = (
        db_session.query(models.TurbineOperator)
        .filter(models.TurbineOperator.turbine_id == first_turbine)
        .one()
    )
    previous.valid_to = date(2025, 6, 30)
    db_session.add(
        models.TurbineOperator(
            turbine_id=first_turbine,
            fund_id=second_fund,
            ownership_percentage=Decimal("100"),
            valid_from=date(2025, 7, 1),
        )
    )
    db_session.commit()

    year_end = CostAllocationService.fund_weights(
        db_session, TENANT_ID, seed_network_park["park_id"], date(2025, 12, 31)
    )
    spring = CostAllocationService.fund_weights(
        db_session, TENANT_ID, seed_network_park["park_id"], date(2025, 3, 31)
    )

    assert year_end == {second_fund: Decimal("2")}
    assert spring == {first_fund: Decimal("1"), second_fund: Decimal("1")}


@pytest.mark.parametrize("month, expected", [(3, date(2025, 3, 31)), (2, date(2025, 2, 28))])
def test_monthly_advance_allocation_uses_month_end(month, expected):
    period = models.SettlementPeriod(
        year=2025,
        month=month,
        period_type=models.SettlementPeriodType.ADVANCE,
        advance_interval=models.AdvanceInterval.MONTHLY,
    )

    assert _reference_date(period) == expected


def test_allocation_database_error_returns_server_error(
    client, monkeypatch, caplog, seed_network_park
):
    period = _settled_final_period(client, seed_network_park["park_id"])

    def _fail(*args, **kwargs):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(CostAllocationService, "allocate_period", _fail)
    with caplog.at_level(logging.ERROR):
        response = client.post(f"/settlement-periods/{period['id']}/cost-allocation")

    assert response.status_code == 500
    assert response.json()["detail"] == "Could not allocate the settlement costs. Please try again later."
    assert "Failed to allocate the settlement costs" in caplog.text


def test_allocation_invoices_carry_invoice_and_due_date(client, seed_network_park):
    period = _settled_final_period(client, seed_network_park["park_id"])

    response = client.post(
        f"/settlement-periods/{period['id']}/settlement-invoices",
        json={"invoice_date": "2026-02-02"},
    )

    assert response.status_code == 201, response.json()
    invoices = response.json()["allocation"]["invoices"]
    assert len(invoices) == 2
    for invoice in invoices:
        assert invoice["invoice_number"].startswith("RE-2026-")
        assert invoice["invoice_date"] == "2026-02-02"
        assert invoice["due_date"] == "2026-02-15"
