from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from costing.main import app

from .conftest import MONTH, YEAR, make_record

client = TestClient(app)

PERIOD = {"month": MONTH, "year": YEAR}


@pytest.fixture(autouse=True)
def api_store(use_store):
    use_store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    return use_store


def test_health():
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_list_rows_returns_camel_case_page():
    response = client.get("/api/v1/costing/rows", params=PERIOD)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 4
    assert body["hasMore"] is False
    first = body["records"][0]
    assert {"uniqueId", "billingId", "costingAmount", "totalBillAmount", "isEditable"} <= set(first)


def test_list_rows_search_sort_and_paginate():
    response = client.get(
        "/api/v1/costing/rows",
        params={**PERIOD, "sortBy": "hours", "sortOrder": "descending", "limit": 1},
    )
    body = response.json()
    assert body["totalPages"] == 4
    assert body["hasMore"] is True
    assert body["records"][0]["billingId"] == "B1"

    response = client.get("/api/v1/costing/rows", params={**PERIOD, "search": "omar"})
    assert response.json()["total"] == 2


def test_unknown_sort_key_is_rejected():
    response = client.get("/api/v1/costing/rows", params={**PERIOD, "sortBy": "secret"})
    assert response.status_code == 400


def test_unknown_location_is_404():
    response = client.get("/api/v1/costing/rows", params={**PERIOD, "locationId": "nowhere"})
    assert response.status_code == 404


def test_store_outage_is_502(api_store):
    api_store.failing.add("list_billing_records")
    response = client.get("/api/v1/costing/rows", params=PERIOD)
    assert response.status_code == 502


def test_totals_for_loaded_view():
    client.get("/api/v1/costing/rows", params=PERIOD)
    response = client.get("/api/v1/costing/totals", params=PERIOD)
    assert response.status_code == 200
    assert response.json() == {"revenue": 100.0, "cost": 50.0, "profit": 50.0}


def test_edit_row_saves_monthly_record(api_store):
    client.get("/api/v1/costing/rows", params={**PERIOD, "locationId": "loc-1"})

    response = client.patch(
        "/api/v1/costing/rows/verisma-loc-1-res-2",
        json={"field": "hours", "value": 7},
    )

    assert response.status_code == 200
    row = response.json()["row"]
    assert row["isMonthlyRecord"] is True
    assert row["costingAmount"] == 70.0
    assert row["billingId"] in api_store.records


def test_edit_validation_error_is_400():
    client.get("/api/v1/costing/rows", params={**PERIOD, "locationId": "loc-1"})

    response = client.patch("/api/v1/costing/rows/verisma-loc-1-res-1", json={"field": "hours", "value": -2})

    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "validation"


def test_edit_unknown_row_is_404():
    response = client.patch("/api/v1/costing/rows/nope", json={"field": "hours", "value": 1})
    assert response.status_code == 404


def test_edit_sync_failure_is_502(api_store):
    client.get("/api/v1/costing/rows", params={**PERIOD, "locationId": "loc-1"})
    api_store.failing.add("update_billing_record:res-1")

    response = client.patch("/api/v1/costing/rows/verisma-loc-1-res-1", json={"field": "hours", "value": 9})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["kind"] == "sync"
    assert detail["row"]["hours"] == 5
    assert api_store.records["B1"].hours == 5


def test_sessions_do_not_share_views():
    client.get("/api/v1/costing/rows", params={**PERIOD, "locationId": "loc-1"}, headers={"X-Costing-Session": "a"})

    response = client.patch(
        "/api/v1/costing/rows/verisma-loc-1-res-1",
        json={"field": "hours", "value": 1},
        headers={"X-Costing-Session": "b"},
    )
    assert response.status_code == 404


def test_generate_invoice_and_list_it():
    response = client.post("/api/v1/costing/invoices", json={**PERIOD, "locationId": "loc-1"})

    assert response.status_code == 201
    outcome = response.json()
    assert outcome["state"] == "invoiced"
    assert outcome["billingRecordIds"] == ["B1"]
    invoice = outcome["invoice"]
    assert invoice["invoiceNumber"] == f"INV-{YEAR}{MONTH:02d}-0001"

    listed = client.get("/api/v1/invoices", params={"month": MONTH, "projectId": "verisma"})
    assert [item["id"] for item in listed.json()] == [invoice["id"]]
    assert client.get("/api/v1/invoices", params={"projectId": "mro"}).json() == []

    fetched = client.get(f"/api/v1/invoices/{invoice['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["totalBillingAmount"] == 100.0


def test_unknown_invoice_is_404():
    assert client.get("/api/v1/invoices/missing").status_code == 404


def test_nothing_to_invoice_is_400():
    response = client.post("/api/v1/costing/invoices", json={**PERIOD, "locationId": "loc-2"})
    assert response.status_code == 400
    assert response.json()["detail"]["errorKind"] == "validation"


def test_invoice_failure_then_resume(api_store):
    api_store.failing.add("create_invoice")

    failed = client.post("/api/v1/costing/invoices", json={**PERIOD, "locationId": "loc-1"})
    assert failed.status_code == 502
    assert failed.json()["detail"]["state"] == "invoice_failed"

    api_store.failing.clear()
    resumed = client.post("/api/v1/costing/invoices/resume")
    assert resumed.status_code == 201
    assert resumed.json()["state"] == "invoiced"
    assert len(api_store.invoices) == 1
