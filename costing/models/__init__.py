from .billing import (
    DELETED_RESOURCE_LABEL,
    PRODUCTIVITY_LEVELS,
    BillableStatus,
    BillingRecord,
    BillingRecordPayload,
    BillingRow,
    BillingRowPage,
    CostingTotals,
    EditableField,
    EditResult,
    Location,
    LocationAssignment,
    ProductivityLevel,
    Project,
    RateTier,
    ReconcileFilter,
    Resource,
    billable_status_for,
    build_unique_id,
    is_billable_status,
    normalise_level,
)
from .invoice import (
    BillingPeriod,
    CreateInvoiceRequest,
    Invoice,
    InvoiceLine,
    InvoiceOutcome,
    InvoiceState,
    InvoiceTotals,
)

__all__ = [
    "DELETED_RESOURCE_LABEL",
    "PRODUCTIVITY_LEVELS",
    "BillableStatus",
    "BillingPeriod",
    "BillingRecord",
    "BillingRecordPayload",
    "BillingRow",
    "BillingRowPage",
    "CostingTotals",
    "CreateInvoiceRequest",
    "EditableField",
    "EditResult",
    "Invoice",
    "InvoiceLine",
    "InvoiceOutcome",
    "InvoiceState",
    "InvoiceTotals",
    "Location",
    "LocationAssignment",
    "ProductivityLevel",
    "Project",
    "RateTier",
    "ReconcileFilter",
    "Resource",
    "billable_status_for",
    "build_unique_id",
    "is_billable_status",
    "normalise_level",
]
