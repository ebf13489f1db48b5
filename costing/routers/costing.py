from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from ..config import settings
from ..models import (
    BillingPeriod,
    BillingRow,
    BillingRowPage,
    CostingTotals,
    EditResult,
    InvoiceOutcome,
    ReconcileFilter,
)
from ..repos.billing_store import BillingStoreError
from ..services.inline_edit import InlineEditSynchronizer
from ..services.invoicing import InvoiceGenerator
from ..services.reconciliation import reconcile
from ..services.session import CostingSession
from ..services.totals import compute_totals, query_rows
from .deps import get_session

router = APIRouter(prefix="/api/v1/costing", tags=["costing"])

_EDIT_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "busy": status.HTTP_409_CONFLICT,
    "fetch": status.HTTP_502_BAD_GATEWAY,
    "sync": status.HTTP_502_BAD_GATEWAY,
}

_INVOICE_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "busy": status.HTTP_409_CONFLICT,
    "sync": status.HTTP_502_BAD_GATEWAY,
    "invoice": status.HTTP_502_BAD_GATEWAY,
}


class EditRequest(BaseModel):
    field: str
    value: Any = None
    refresh: bool = False


class InvoiceRequest(BaseModel):
    project_id: Optional[str] = Field(default=None, alias="projectId")
    location_id: Optional[str] = Field(default=None, alias="locationId")
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)

    model_config = ConfigDict(populate_by_name=True)


async def _reconciled(session: CostingSession, filter_: ReconcileFilter, refresh: bool) -> List[BillingRow]:
    if not refresh and session.view.matches(filter_):
        return session.view.rows()
    try:
        return await reconcile(session, filter_)
    except BillingStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


def _outcome_or_error(outcome: InvoiceOutcome) -> InvoiceOutcome:
    if outcome.ok:
        return outcome
    code = _INVOICE_STATUS.get(outcome.error_kind or "validation", status.HTTP_400_BAD_REQUEST)
    raise HTTPException(status_code=code, detail=outcome.model_dump(mode="json", by_alias=True))


@router.get("/rows", response_model=BillingRowPage)
async def list_rows(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    location_id: Optional[str] = Query(default=None, alias="locationId"),
    search: Optional[str] = Query(default=None),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    sort_order: str = Query(default="ascending", alias="sortOrder"),
    show_non_billable: bool = Query(default=True, alias="showNonBillable"),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    refresh: bool = Query(default=True),
    session: CostingSession = Depends(get_session),
) -> BillingRowPage:
    filter_ = ReconcileFilter(project_id=project_id, location_id=location_id, month=month, year=year)
    rows = await _reconciled(session, filter_, refresh)
    try:
        return query_rows(
            rows,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            show_non_billable=show_non_billable,
            page=page,
            limit=min(limit or settings.default_page_size, settings.max_page_size),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/totals", response_model=CostingTotals)
async def totals(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    location_id: Optional[str] = Query(default=None, alias="locationId"),
    show_non_billable: bool = Query(default=True, alias="showNonBillable"),
    refresh: bool = Query(default=False),
    session: CostingSession = Depends(get_session),
) -> CostingTotals:
    filter_ = ReconcileFilter(project_id=project_id, location_id=location_id, month=month, year=year)
    rows = await _reconciled(session, filter_, refresh)
    return compute_totals(rows, show_non_billable)


@router.patch("/rows/{unique_id}", response_model=EditResult)
async def edit_row(
    unique_id: str,
    payload: EditRequest,
    session: CostingSession = Depends(get_session),
) -> EditResult:
    row = session.view.get(unique_id)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Row is not part of the current costing view; reload the period first",
        )

    result = await InlineEditSynchronizer(session).apply_edit(row, payload.field, payload.value)
    if not result.ok:
        raise HTTPException(
            status_code=_EDIT_STATUS.get(result.kind or "validation", status.HTTP_400_BAD_REQUEST),
            detail=result.model_dump(mode="json", by_alias=True),
        )

    if payload.refresh and session.view.filter is not None:
        await _reconciled(session, session.view.filter, refresh=True)
        refreshed = session.view.get(unique_id)
        if refreshed is not None:
            return EditResult.success(refreshed)
    return result


@router.post("/invoices", response_model=InvoiceOutcome, status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    payload: InvoiceRequest,
    session: CostingSession = Depends(get_session),
) -> InvoiceOutcome:
    filter_ = ReconcileFilter(
        project_id=payload.project_id,
        location_id=payload.location_id,
        month=payload.month,
        year=payload.year,
    )
    rows = await _reconciled(session, filter_, refresh=False)
    outcome = await InvoiceGenerator(session).generate(
        rows, BillingPeriod(month=payload.month, year=payload.year)
    )
    return _outcome_or_error(outcome)


@router.post("/invoices/resume", response_model=InvoiceOutcome, status_code=status.HTTP_201_CREATED)
async def resume_invoice(session: CostingSession = Depends(get_session)) -> InvoiceOutcome:
    outcome = await InvoiceGenerator(session).resume()
    return _outcome_or_error(outcome)
