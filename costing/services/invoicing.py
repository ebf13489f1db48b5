from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from ..models import (
    BillingPeriod,
    BillingRow,
    CreateInvoiceRequest,
    InvoiceLine,
    InvoiceOutcome,
    InvoiceTotals,
    billable_status_for,
)
from ..repos.billing_store import BillingStoreError
from .inline_edit import sync_row
from .session import CostingSession, RowBusyError


logger = logging.getLogger(__name__)

NOTHING_TO_INVOICE = "Nothing to invoice: no saved row has hours for this period"


def is_invoiceable(row: BillingRow) -> bool:
    return bool(row.billing_id) and row.hours > 0


def invoice_totals(rows: Iterable[BillingRow]) -> InvoiceTotals:
    totals = InvoiceTotals()
    for row in rows:
        totals.total_costing_amount += row.costing_amount
        totals.total_billing_amount += row.total_bill_amount
        if row.is_billable:
            totals.total_billable_amount += row.total_bill_amount
        else:
            totals.total_non_billable_amount += row.total_bill_amount
    return totals


def invoice_lines(rows: Iterable[BillingRow]) -> List[InvoiceLine]:
    return [
        InvoiceLine(
            billing_record_id=row.billing_id,
            project_id=row.project_id,
            location_id=row.location_id,
            resource_id=row.resource_id,
            resource_name=row.resource_name,
            hours=row.hours,
            rate=row.rate,
            flat_rate=row.flat_rate,
            costing=row.costing_amount,
            total_amount=row.total_bill_amount,
            billable_status=billable_status_for(row.is_billable),
        )
        for row in rows
    ]


class InvoiceGenerator:
    """Two-phase invoice saga: sync every row, then invoice the synced records.

    Phase one commits are per-row and idempotent (same create-or-update rule
    as inline edits), so nothing is rolled back when a later step fails.
    """

    def __init__(self, session: CostingSession) -> None:
        self.session = session

    def _finish(self, outcome: InvoiceOutcome) -> InvoiceOutcome:
        self.session.last_outcome = outcome
        return outcome

    async def generate(self, rows: Iterable[BillingRow], period: BillingPeriod) -> InvoiceOutcome:
        rows = list(rows)
        outcome = InvoiceOutcome(state="idle", period=period, rows=rows)
        if not any(is_invoiceable(row) for row in rows):
            outcome.error_kind = "validation"
            outcome.error = NOTHING_TO_INVOICE
            return outcome

        view = self.session.view
        try:
            with view.claim(row.unique_id for row in rows):
                outcome.state = "syncing"
                results = await asyncio.gather(
                    *(sync_row(self.session.store, row, period.month, period.year) for row in rows),
                    return_exceptions=True,
                )
        except RowBusyError as exc:
            outcome.state = "idle"
            outcome.error_kind = "busy"
            outcome.error = str(exc)
            return outcome

        synced: List[BillingRow] = []
        failures: List[tuple[BillingRow, BillingStoreError]] = []
        for row, result in zip(rows, results):
            if isinstance(result, BillingStoreError):
                failures.append((row, result))
                synced.append(row)
                continue
            if isinstance(result, BaseException):
                raise result
            if row.needs_create:
                outcome.created_record_ids.append(result.billing_id)
            view.put(result)
            synced.append(result)
        outcome.rows = synced

        if failures:
            failed_row, exc = failures[0]
            outcome.state = "sync_failed"
            outcome.error_kind = "sync"
            outcome.failed_resource = failed_row.resource_name
            outcome.failed_unique_id = failed_row.unique_id
            outcome.error = f"Sync failed on resource {failed_row.resource_name}: {exc}"
            logger.warning(
                "Invoice sync for %s/%s failed on %s of %s rows (%s kept): %s",
                period.month,
                period.year,
                len(failures),
                len(rows),
                len(rows) - len(failures),
                exc,
            )
            return self._finish(outcome)

        outcome.state = "synced"
        return await self._invoice(outcome)

    async def resume(self, outcome: Optional[InvoiceOutcome] = None) -> InvoiceOutcome:
        """Retry only the invoice phase of a saga whose rows are already synced."""
        previous = outcome or self.session.last_outcome
        if previous is None or not previous.resumable:
            return InvoiceOutcome(
                state=previous.state if previous else "idle",
                period=previous.period if previous else None,
                error_kind="validation",
                error="There is no synced invoice run to resume",
            )
        resumed = previous.model_copy(
            deep=True,
            update={"state": "synced", "error_kind": None, "error": None, "invoice": None},
        )
        return await self._invoice(resumed)

    async def _invoice(self, outcome: InvoiceOutcome) -> InvoiceOutcome:
        eligible = [row for row in outcome.rows if is_invoiceable(row)]
        if not eligible:
            outcome.error_kind = "validation"
            outcome.error = NOTHING_TO_INVOICE
            return self._finish(outcome)

        outcome.state = "invoicing"
        outcome.billing_record_ids = [row.billing_id for row in eligible]
        request = CreateInvoiceRequest(
            billing_record_ids=outcome.billing_record_ids,
            month=outcome.period.month,
            year=outcome.period.year,
            totals=invoice_totals(eligible),
            lines=invoice_lines(eligible),
        )
        try:
            invoice = await self.session.store.create_invoice(request)
        except BillingStoreError as exc:
            outcome.state = "invoice_failed"
            outcome.error_kind = "invoice"
            outcome.error = f"Hours were saved, but the invoice was not created: {exc}"
            logger.warning("Invoice creation for %s/%s failed: %s", outcome.period.month, outcome.period.year, exc)
            return self._finish(outcome)

        outcome.state = "invoiced"
        outcome.invoice = invoice
        logger.info(
            "Generated invoice %s for %s/%s with %s billing records",
            invoice.invoice_number,
            outcome.period.month,
            outcome.period.year,
            len(outcome.billing_record_ids),
        )
        return self._finish(outcome)
