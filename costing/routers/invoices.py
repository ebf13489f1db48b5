from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..models import Invoice
from ..repos.billing_store import BillingStoreError
from ..services.session import CostingSession
from ..services.totals import filter_invoices
from .deps import get_session

router = APIRouter(prefix="/api/v1/invoices", tags=["invoices"])


@router.get("", response_model=List[Invoice])
async def list_invoices(
    search: Optional[str] = Query(default=None),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    location_id: Optional[str] = Query(default=None, alias="locationId"),
    session: CostingSession = Depends(get_session),
) -> List[Invoice]:
    try:
        invoices = await session.store.list_invoices()
    except BillingStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return filter_invoices(
        invoices,
        search=search,
        month=month,
        year=year,
        project_id=project_id,
        location_id=location_id,
    )


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(invoice_id: str, session: CostingSession = Depends(get_session)) -> Invoice:
    try:
        invoice = await session.store.get_invoice(invoice_id)
    except BillingStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if invoice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice
