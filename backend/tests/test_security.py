from __future__ import annotations

from conftest import TENANT_ID


def test_requests_without_tenant_are_rejected(client):
    response = client.get("/settlement-periods", headers={"X-Tenant-ID": ""})

    assert response.status_code == 401
    assert "X-Tenant-ID" in response.json()["detail"]


def test_tenant_identifier_must_be_a_uuid(client):
    response = client.get("/settlement-periods", headers={"X-Tenant-ID": "windpark-nord"})

    assert response.status_code == 401


def test_tenant_identifier_is_normalized(client, seed_park):
    response = client.post(
        "/settlement-periods",
        json={"park_id": seed_park["park_id"], "year": 2025, "period_type": "FINAL"},
        headers={"X-Tenant-ID": TENANT_ID.upper()},
    )

    assert response.status_code == 201, response.json()
    assert response.json()["tenant_id"] == TENANT_ID
