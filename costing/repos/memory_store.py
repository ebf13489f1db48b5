from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..data import (
    fallback_billing_records,
    fallback_projects,
    fallback_rate_tiers,
    fallback_resources,
)
from ..models import (
    BillingRecord,
    BillingRecordPayload,
    CreateInvoiceRequest,
    Invoice,
    Project,
    RateTier,
    Resource,
)
from .billing_store import BillingStoreError, format_invoice_number


logger = logging.getLogger(__name__)


class MemoryBillingStore:
    """Process-local billing store.

    Serves the fixture data when Postgres is unreachable at startup and backs
    the test-suite. Reads return copies so callers never mutate stored state.
    """

    def __init__(
        self,
        projects: Iterable[Project] = (),
        resources: Iterable[Resource] = (),
        rate_tiers: Optional[Dict[str, List[RateTier]]] = None,
        records: Iterable[BillingRecord] = (),
    ) -> None:
        self.projects: List[Project] = list(projects)
        self.resources: List[Resource] = list(resources)
        self.rate_tiers: Dict[str, List[RateTier]] = dict(rate_tiers or {})
        self.records: Dict[str, BillingRecord] = {record.id: record for record in records}
        self.invoices: Dict[str, Invoice] = {}
        self.calls: List[str] = []

    @classmethod
    def from_fixtures(cls) -> "MemoryBillingStore":
        projects = [Project.model_validate(project) for project in fallback_projects()]
        rate_tiers = {
            location.id: [RateTier.model_validate(tier) for tier in fallback_rate_tiers(location.id)]
            for project in projects
            for location in project.locations
        }
        return cls(
            projects=projects,
            resources=[Resource.model_validate(resource) for resource in fallback_resources()],
            rate_tiers=rate_tiers,
            records=[BillingRecord.model_validate(record) for record in fallback_billing_records()],
        )

    async def list_projects(self) -> List[Project]:
        self.calls.append("list_projects")
        return [project.model_copy(deep=True) for project in self.projects]

    async def list_rate_tiers(self, location_id: str) -> List[RateTier]:
        self.calls.append(f"list_rate_tiers:{location_id}")
        return [tier.model_copy() for tier in self.rate_tiers.get(location_id, [])]

    async def list_all_resources(self) -> List[Resource]:
        self.calls.append("list_all_resources")
        return [resource.model_copy(deep=True) for resource in self.resources]

    async def list_billing_records(
        self,
        month: int,
        year: int,
        location_id: Optional[str] = None,
        include_templates: bool = False,
    ) -> List[BillingRecord]:
        self.calls.append("list_billing_records")
        results: List[BillingRecord] = []
        for record in self.records.values():
            if location_id is not None and record.location_id != location_id:
                continue
            if record.month == month and record.year == year:
                results.append(record.model_copy())
            elif include_templates and not record.has_period:
                results.append(record.model_copy())
        return results

    async def create_billing_record(self, payload: BillingRecordPayload) -> str:
        self.calls.append(f"create_billing_record:{payload.resource_id}")
        record_id = f"bill-{uuid.uuid4().hex[:12]}"
        self.records[record_id] = BillingRecord(id=record_id, **payload.model_dump())
        return record_id

    async def update_billing_record(self, record_id: str, payload: BillingRecordPayload) -> None:
        self.calls.append(f"update_billing_record:{record_id}")
        if record_id not in self.records:
            raise BillingStoreError("update_billing_record", f"billing record {record_id} not found")
        self.records[record_id] = BillingRecord(id=record_id, **payload.model_dump())

    async def create_invoice(self, request: CreateInvoiceRequest) -> Invoice:
        self.calls.append("create_invoice")
        missing = [record_id for record_id in request.billing_record_ids if record_id not in self.records]
        if missing:
            raise BillingStoreError("create_invoice", f"unknown billing records: {', '.join(missing)}")
        sequence = 1 + sum(
            1 for invoice in self.invoices.values() if (invoice.month, invoice.year) == (request.month, request.year)
        )
        invoice = Invoice(
            id=str(uuid.uuid4()),
            invoice_number=format_invoice_number(request.year, request.month, sequence),
            month=request.month,
            year=request.year,
            billing_record_ids=list(request.billing_record_ids),
            lines=list(request.lines),
            created_at=datetime.now(timezone.utc),
            **request.totals.model_dump(),
        )
        self.invoices[invoice.id] = invoice
        logger.info("Stored invoice %s with %s records", invoice.invoice_number, len(request.billing_record_ids))
        return invoice.model_copy(deep=True)

    async def list_invoices(self) -> List[Invoice]:
        self.calls.append("list_invoices")
        return sorted(
            (invoice.model_copy(deep=True) for invoice in self.invoices.values()),
            key=lambda invoice: invoice.created_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        self.calls.append(f"get_invoice:{invoice_id}")
        invoice = self.invoices.get(invoice_id)
        return invoice.model_copy(deep=True) if invoice else None
