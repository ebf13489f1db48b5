from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .billing import BillableStatus, BillingRow

InvoiceState = Literal[
    "idle",
    "syncing",
    "sync_failed",
    "synced",
    "invoicing",
    "invoice_failed",
    "invoiced",
]


class InvoiceLine(BaseModel):
    billing_record_id: str = Field(alias="billingRecordId")
    project_id: str = Field(alias="projectId")
    location_id: str = Field(alias="locationId")
    resource_id: str = Field(alias="resourceId")
    resource_name: Optional[str] = Field(default=None, alias="resourceName")
    hours: float
    rate: float
    flat_rate: float = Field(alias="flatRate")
    costing: float
    total_amount: float = Field(alias="totalAmount")
    billable_status: BillableStatus = Field(alias="billableStatus")

    model_config = ConfigDict(populate_by_name=True)


class InvoiceTotals(BaseModel):
    total_costing_amount: float = Field(default=0.0, alias="totalCostingAmount")
    total_billing_amount: float = Field(default=0.0, alias="totalBillingAmount")
    total_billable_amount: float = Field(default=0.0, alias="totalBillableAmount")
    total_non_billable_amount: float = Field(default=0.0, alias="totalNonBillableAmount")

    model_config = ConfigDict(populate_by_name=True)


class CreateInvoiceRequest(BaseModel):
    billing_record_ids: List[str] = Field(alias="billingRecordIds")
    month: int
    year: int
    totals: InvoiceTotals = Field(default_factory=InvoiceTotals)
    lines: List[InvoiceLine] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class Invoice(InvoiceTotals):
    id: str
    invoice_number: str = Field(alias="invoiceNumber")
    month: int
    year: int
    billing_record_ids: List[str] = Field(default_factory=list, alias="billingRecordIds")
    lines: List[InvoiceLine] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class BillingPeriod(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class InvoiceOutcome(BaseModel):
    state: InvoiceState = "idle"
    period: Optional[BillingPeriod] = None
    invoice: Optional[Invoice] = None
    rows: List[BillingRow] = Field(default_factory=list)
    billing_record_ids: List[str] = Field(default_factory=list, alias="billingRecordIds")
    created_record_ids: List[str] = Field(default_factory=list, alias="createdRecordIds")
    error_kind: Optional[Literal["validation", "busy", "sync", "invoice"]] = Field(default=None, alias="errorKind")
    error: Optional[str] = None
    failed_resource: Optional[str] = Field(default=None, alias="failedResource")
    failed_unique_id: Optional[str] = Field(default=None, alias="failedUniqueId")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def ok(self) -> bool:
        return self.state == "invoiced"

    @property
    def resumable(self) -> bool:
        return self.state in ("synced", "invoice_failed")
