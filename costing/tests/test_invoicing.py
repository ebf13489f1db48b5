from __future__ import annotations

import asyncio

from costing.models import BillingPeriod, ReconcileFilter
from costing.services.invoicing import NOTHING_TO_INVOICE, InvoiceGenerator, invoice_totals
from costing.services.reconciliation import reconcile

from .conftest import MONTH, YEAR, make_record

PERIOD = BillingPeriod(month=MONTH, year=YEAR)


def _load(session, **kwargs):
    filter_ = ReconcileFilter(month=MONTH, year=YEAR, **kwargs)
    return asyncio.run(reconcile(session, filter_))


def _generate(session, rows):
    return asyncio.run(InvoiceGenerator(session).generate(rows, PERIOD))


def test_nothing_to_invoice_makes_no_calls(session, store):
    rows = _load(session, location_id="loc-1")
    calls_before = list(store.calls)

    outcome = _generate(session, rows)

    assert outcome.state == "idle"
    assert outcome.error_kind == "validation"
    assert outcome.error == NOTHING_TO_INVOICE
    assert store.calls == calls_before


def test_unsaved_hours_are_synced_before_invoicing(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    rows = _load(session, location_id="loc-1")
    rows = [row.model_copy(update={"hours": 3.0}) if row.resource_id == "res-2" else row for row in rows]

    outcome = _generate(session, rows)

    assert outcome.ok
    assert len(outcome.created_record_ids) == 1
    created = outcome.created_record_ids[0]
    assert store.records[created].resource_id == "res-2"
    assert store.records[created].hours == 3
    assert sorted(outcome.billing_record_ids) == sorted(["B1", created])
    assert outcome.invoice.invoice_number == f"INV-{YEAR}{MONTH:02d}-0001"
    assert outcome.invoice.total_costing_amount == 80.0
    assert outcome.invoice.total_billing_amount == 160.0
    assert sorted(store.invoices[outcome.invoice.id].billing_record_ids) == sorted(["B1", created])


def test_rows_without_hours_are_synced_but_not_invoiced(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    rows = _load(session, location_id="loc-1")

    outcome = _generate(session, rows)

    assert outcome.ok
    assert outcome.billing_record_ids == ["B1"]
    assert len(outcome.created_record_ids) == 1
    assert [line.resource_id for line in outcome.invoice.lines] == ["res-1"]


def test_second_run_creates_no_new_records(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    rows = _load(session, location_id="loc-1")

    first = _generate(session, rows)
    record_ids = set(store.records)
    second = _generate(session, session.view.rows())

    assert first.ok and second.ok
    assert second.created_record_ids == []
    assert set(store.records) == record_ids
    assert second.invoice.invoice_number == f"INV-{YEAR}{MONTH:02d}-0002"


def test_synced_rows_round_trip_through_reconcile(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    rows = _load(session, location_id="loc-1")
    outcome = _generate(session, rows)

    reloaded = {row.unique_id: row for row in _load(session, location_id="loc-1")}

    for row in outcome.rows:
        assert reloaded[row.unique_id].is_monthly_record
        assert reloaded[row.unique_id].billing_id == row.billing_id


def test_sync_failure_names_resource_and_keeps_other_rows(session, store):
    store.records["B0"] = make_record("B0", "loc-2", "res-2", hours=4, rate=9.0, flat_rate=18.0)
    rows = _load(session, project_id="verisma")
    assert [row.resource_name for row in rows] == ["Omar Siddiqui", "Aisha Khan", "Omar Siddiqui"]
    store.failing.add("create_billing_record:res-1")

    outcome = _generate(session, rows)

    assert outcome.state == "sync_failed"
    assert outcome.error_kind == "sync"
    assert outcome.failed_resource == "Aisha Khan"
    assert outcome.failed_unique_id == "verisma-loc-1-res-1"
    assert "Aisha Khan" in outcome.error
    assert outcome.invoice is None
    assert "create_invoice" not in store.calls
    assert "update_billing_record:B0" in store.calls
    assert {(record.location_id, record.resource_id) for record in store.records.values()} == {
        ("loc-2", "res-2"),
        ("loc-1", "res-2"),
    }
    assert not outcome.resumable


def test_invoice_failure_is_distinct_and_resumable(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    rows = _load(session, location_id="loc-1")
    store.failing.add("create_invoice")

    failed = _generate(session, rows)

    assert failed.state == "invoice_failed"
    assert failed.error_kind == "invoice"
    assert failed.error.startswith("Hours were saved")
    assert failed.resumable
    assert all(row.is_monthly_record for row in failed.rows)
    assert len(store.records) == 2
    assert store.invoices == {}

    store.failing.clear()
    calls_before = len(store.calls)
    resumed = asyncio.run(InvoiceGenerator(session).resume())

    assert resumed.ok
    assert resumed.billing_record_ids == ["B1"]
    assert store.calls[calls_before:] == ["create_invoice"]
    assert session.last_outcome is resumed


def test_resume_without_prior_run_is_rejected(session, store):
    outcome = asyncio.run(InvoiceGenerator(session).resume())

    assert outcome.error_kind == "validation"
    assert store.calls == []


def test_rows_in_flight_block_generation(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    rows = _load(session, location_id="loc-1")

    with session.view.claim([rows[0].unique_id]):
        outcome = _generate(session, rows)

    assert outcome.error_kind == "busy"
    assert store.writes() == []


def test_invoice_totals_split_billable_amounts(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    store.records["B2"] = make_record("B2", "loc-1", "res-2", hours=2, billable_status="Non-Billable")
    rows = _load(session, location_id="loc-1")

    totals = invoice_totals(rows)

    assert totals.total_costing_amount == 70.0
    assert totals.total_billing_amount == 140.0
    assert totals.total_billable_amount == 100.0
    assert totals.total_non_billable_amount == 40.0


def test_deleted_resource_label_is_not_stored(session, store):
    store.records["B1"] = make_record("B1", "loc-1", "res-1", hours=5)
    store.records["B9"] = make_record("B9", "loc-1", "res-gone", hours=2)
    store.records["B8"] = make_record("B8", "loc-1", "res-left", hours=1, resource_name="Bilal Ahmed")
    rows = _load(session, location_id="loc-1")

    outcome = _generate(session, rows)

    assert outcome.ok
    assert "B9" in outcome.billing_record_ids
    assert store.records["B9"].resource_name is None
    assert store.records["B8"].resource_name == "Bilal Ahmed"
