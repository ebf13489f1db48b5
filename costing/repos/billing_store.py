from __future__ import annotations

from typing import List, Optional, Protocol

from ..models import (
    BillingRecord,
    BillingRecordPayload,
    CreateInvoiceRequest,
    Invoice,
    Project,
    RateTier,
    Resource,
)


class BillingStoreError(RuntimeError):
    """Raised by every billing store adapter when a read or write fails."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code


class BillingStore(Protocol):
    async def list_projects(self) -> List[Project]: ...

    async def list_rate_tiers(self, location_id: str) -> List[RateTier]: ...

    async def list_all_resources(self) -> List[Resource]: ...

    async def list_billing_records(
        self,
        month: int,
        year: int,
        location_id: Optional[str] = None,
        include_templates: bool = False,
    ) -> List[BillingRecord]: ...

    async def create_billing_record(self, payload: BillingRecordPayload) -> str: ...

    async def update_billing_record(self, record_id: str, payload: BillingRecordPayload) -> None: ...

    async def create_invoice(self, request: CreateInvoiceRequest) -> Invoice: ...

    async def list_invoices(self) -> List[Invoice]: ...

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]: ...


def format_invoice_number(year: int, month: int, sequence: int) -> str:
    return f"INV-{year}{month:02d}-{sequence:04d}"
