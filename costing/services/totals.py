from __future__ import annotations

import math
from typing import Iterable, List, Optional

from ..models import BillingRow, BillingRowPage, CostingTotals, Invoice

SORTABLE_KEYS = (
    "project_name",
    "location_name",
    "resource_name",
    "hours",
    "rate",
    "costing_amount",
    "flat_rate",
    "total_bill_amount",
)

_SORT_ALIASES = {
    "projectName": "project_name",
    "subProjectName": "location_name",
    "locationName": "location_name",
    "resource": "resource_name",
    "resourceName": "resource_name",
    "costing": "costing_amount",
    "costingAmount": "costing_amount",
    "flatrate": "flat_rate",
    "flatRate": "flat_rate",
    "totalbill": "total_bill_amount",
    "totalBillAmount": "total_bill_amount",
}


def visible_rows(rows: Iterable[BillingRow], show_non_billable: bool = True) -> List[BillingRow]:
    return [row for row in rows if show_non_billable or row.is_billable]


def compute_totals(rows: Iterable[BillingRow], show_non_billable: bool = True) -> CostingTotals:
    shown = visible_rows(rows, show_non_billable)
    revenue = sum(row.total_bill_amount for row in shown if row.is_billable)
    cost = sum(row.costing_amount for row in shown)
    return CostingTotals(revenue=revenue, cost=cost, profit=revenue - cost)


def normalise_sort_key(sort_by: Optional[str]) -> str:
    key = _SORT_ALIASES.get(sort_by or "", sort_by or "resource_name")
    if key not in SORTABLE_KEYS:
        raise ValueError(f"Cannot sort by '{sort_by}'")
    return key


def query_rows(
    rows: Iterable[BillingRow],
    *,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: str = "ascending",
    show_non_billable: bool = True,
    page: int = 1,
    limit: int = 50,
) -> BillingRowPage:
    shown = visible_rows(rows, show_non_billable)

    needle = (search or "").strip().lower()
    if needle:
        shown = [
            row
            for row in shown
            if needle in row.resource_name.lower()
            or needle in row.project_name.lower()
            or needle in row.location_name.lower()
        ]

    key = normalise_sort_key(sort_by)
    descending = sort_order.lower() in ("descending", "desc")

    def _value(row: BillingRow):
        value = getattr(row, key)
        return value.lower() if isinstance(value, str) else value

    shown.sort(key=_value, reverse=descending)

    total = len(shown)
    total_pages = max(1, math.ceil(total / limit)) if limit else 1
    start = (page - 1) * limit
    records = shown[start : start + limit]
    return BillingRowPage(
        records=records,
        total=total,
        page=page,
        total_pages=total_pages,
        has_more=start + len(records) < total,
    )


def filter_invoices(
    invoices: Iterable[Invoice],
    *,
    search: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    project_id: Optional[str] = None,
    location_id: Optional[str] = None,
) -> List[Invoice]:
    needle = (search or "").strip().lower()
    results: List[Invoice] = []
    for invoice in invoices:
        if needle and needle not in invoice.invoice_number.lower():
            continue
        if month is not None and invoice.month != month:
            continue
        if year is not None and invoice.year != year:
            continue
        if project_id and not any(line.project_id == project_id for line in invoice.lines):
            continue
        if location_id and not any(line.location_id == location_id for line in invoice.lines):
            continue
        results.append(invoice)
    return results
