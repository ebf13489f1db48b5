from __future__ import annotations

from datetime import datetime, timezone

import pytest

from costing.models import BillingRow, Invoice, InvoiceLine
from costing.services.totals import compute_totals, filter_invoices, normalise_sort_key, query_rows


def _row(resource_name: str, hours: float, rate: float = 10.0, flat_rate: float = 20.0, **extra) -> BillingRow:
    resource_id = resource_name.lower().replace(" ", "-")
    return BillingRow(
        unique_id=f"p1-l1-{resource_id}",
        project_id="p1",
        project_name="Verisma",
        location_id="l1",
        location_name="NYU Langone",
        resource_id=resource_id,
        resource_name=resource_name,
        hours=hours,
        rate=rate,
        flat_rate=flat_rate,
        month=9,
        year=2025,
        **extra,
    )


ROWS = [
    _row("Aisha Khan", 10),
    _row("Omar Siddiqui", 4, rate=12.5),
    _row("Sana Malik", 2, is_billable=False),
]


def test_totals_count_revenue_for_billable_rows_only():
    totals = compute_totals(ROWS)

    assert totals.revenue == 280.0
    assert totals.cost == 170.0
    assert totals.profit == 110.0


def test_hidden_non_billable_rows_drop_out_of_cost():
    totals = compute_totals(ROWS, show_non_billable=False)

    assert totals.revenue == 280.0
    assert totals.cost == 150.0


def test_derived_amounts_follow_inputs():
    row = ROWS[1].model_copy(update={"hours": 8})

    assert row.costing_amount == 100.0
    assert row.total_bill_amount == 160.0
    assert row.model_dump(by_alias=True)["costingAmount"] == 100.0


def test_query_sorts_and_pages():
    page = query_rows(ROWS, sort_by="costing", sort_order="descending", limit=2)

    assert [row.resource_name for row in page.records] == ["Aisha Khan", "Omar Siddiqui"]
    assert page.total == 3
    assert page.total_pages == 2
    assert page.has_more

    last = query_rows(ROWS, sort_by="costing", sort_order="descending", limit=2, page=2)
    assert [row.resource_name for row in last.records] == ["Sana Malik"]
    assert not last.has_more


def test_query_search_and_billable_filter():
    assert query_rows(ROWS, search="SANA").total == 1
    assert query_rows(ROWS, search="nyu").total == 3
    assert query_rows(ROWS, show_non_billable=False).total == 2


def test_sort_aliases():
    assert normalise_sort_key(None) == "resource_name"
    assert normalise_sort_key("subProjectName") == "location_name"
    assert normalise_sort_key("totalbill") == "total_bill_amount"
    with pytest.raises(ValueError):
        normalise_sort_key("password")


def _invoice(number: str, month: int, project_id: str) -> Invoice:
    line = InvoiceLine(
        billing_record_id="b1",
        project_id=project_id,
        location_id="l1",
        resource_id="r1",
        hours=1,
        rate=10,
        flat_rate=20,
        costing=10,
        total_amount=20,
        billable_status="Billable",
    )
    return Invoice(
        id=number.lower(),
        invoice_number=number,
        month=month,
        year=2025,
        billing_record_ids=["b1"],
        lines=[line],
        created_at=datetime(2025, month, 28, tzinfo=timezone.utc),
    )


def test_filter_invoices():
    invoices = [
        _invoice("INV-202508-0001", 8, "p1"),
        _invoice("INV-202509-0001", 9, "p1"),
        _invoice("INV-202509-0002", 9, "p2"),
    ]

    assert [i.invoice_number for i in filter_invoices(invoices, month=9)] == ["INV-202509-0001", "INV-202509-0002"]
    assert [i.invoice_number for i in filter_invoices(invoices, project_id="p2")] == ["INV-202509-0002"]
    assert [i.invoice_number for i in filter_invoices(invoices, search="0001", location_id="l1")] == [
        "INV-202508-0001",
        "INV-202509-0001",
    ]
    assert filter_invoices(invoices, year=2024) == []
