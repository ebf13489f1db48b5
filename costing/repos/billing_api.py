from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import httpx
from pydantic import ValidationError

from ..config import settings
from ..models import (
    BillingRecord,
    BillingRecordPayload,
    CreateInvoiceRequest,
    Invoice,
    Location,
    Project,
    RateTier,
    Resource,
)
from .billing_store import BillingStoreError


logger = logging.getLogger(__name__)


def _ref(value: Any) -> Optional[str]:
    # the REST backend returns either bare ids or populated documents
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value is not None else None


def _record_from_json(item: Dict[str, Any]) -> BillingRecord:
    return BillingRecord(
        id=_ref(item.get("_id") or item.get("id")),
        project_id=_ref(item.get("project_id")),
        location_id=_ref(item.get("subproject_id")),
        resource_id=_ref(item.get("resource_id")),
        resource_name=item.get("resource_name"),
        hours=item.get("hours") or 0,
        productivity_level=item.get("productivity_level") or "medium",
        rate=item.get("rate") or 0,
        flat_rate=item.get("flatrate") or 0,
        costing=item.get("costing") or 0,
        total_amount=item.get("total_amount") or 0,
        description=item.get("description"),
        billable_status=item.get("billable_status") or "Billable",
        month=item.get("month"),
        year=item.get("year"),
    )


def _record_to_json(payload: BillingRecordPayload) -> Dict[str, Any]:
    return {
        "project_id": payload.project_id,
        "subproject_id": payload.location_id,
        "resource_id": payload.resource_id,
        "resource_name": payload.resource_name,
        "hours": payload.hours,
        "productivity_level": payload.productivity_level,
        "rate": payload.rate,
        "flatrate": payload.flat_rate,
        "costing": payload.costing,
        "total_amount": payload.total_amount,
        "description": payload.description,
        "billable_status": payload.billable_status,
        "month": payload.month,
        "year": payload.year,
    }


def _invoice_from_json(item: Dict[str, Any]) -> Invoice:
    records = item.get("billing_records") or []
    record_ids = item.get("billing_record_ids") or [_ref(record) for record in records]
    return Invoice(
        id=_ref(item.get("_id") or item.get("id")),
        invoice_number=item["invoice_number"],
        month=item.get("month") or (records[0].get("month") if records else 0),
        year=item.get("year") or (records[0].get("year") if records else 0),
        billing_record_ids=[record_id for record_id in record_ids if record_id],
        total_costing_amount=item.get("total_costing_amount") or 0,
        total_billing_amount=item.get("total_billing_amount") or 0,
        total_billable_amount=item.get("total_billable_amount") or 0,
        total_non_billable_amount=item.get("total_non_billable_amount") or 0,
        lines=item.get("lines") or [],
        created_at=item.get("created_at") or item.get("createdAt"),
    )


@contextmanager
def _mapping(operation: str) -> Iterator[None]:
    """Turn a response that does not have the expected shape into a store error."""
    try:
        yield
    except (AttributeError, KeyError, TypeError, ValidationError) as exc:
        logger.warning("Billing API %s returned an unexpected payload: %r", operation, exc)
        raise BillingStoreError(operation, f"unexpected response payload: {exc!r}") from exc


class HttpBillingStore:
    """Billing store backed by the console's REST API."""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.billing_api_url,
            timeout=settings.billing_api_timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            detail = exc.response.text[:200]
            logger.warning("Billing API %s returned %s: %s", operation, code, detail)
            raise BillingStoreError(operation, f"HTTP {code}: {detail}", status_code=code) from exc
        except httpx.HTTPError as exc:
            logger.warning("Billing API %s failed: %s", operation, exc)
            raise BillingStoreError(operation, str(exc) or exc.__class__.__name__) from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BillingStoreError(operation, "response was not JSON", status_code=response.status_code) from exc

    async def list_projects(self) -> List[Project]:
        payload = await self._request("list_projects", "GET", "/project/project-subproject")
        with _mapping("list_projects"):
            items = payload.get("data", []) if isinstance(payload, dict) else payload or []
            projects: List[Project] = []
            for item in items:
                project_id = _ref(item.get("_id") or item.get("id"))
                projects.append(
                    Project(
                        id=project_id,
                        name=item.get("name", ""),
                        locations=[
                            Location(
                                id=_ref(sub.get("_id") or sub.get("id")),
                                project_id=project_id,
                                name=sub.get("name", ""),
                                flat_rate=sub.get("flatrate") or 0,
                            )
                            for sub in item.get("subprojects") or []
                        ],
                    )
                )
            return projects

    async def list_rate_tiers(self, location_id: str) -> List[RateTier]:
        payload = await self._request("list_rate_tiers", "GET", f"/productivity/{location_id}")
        with _mapping("list_rate_tiers"):
            return [RateTier(level=item["level"], base_rate=item.get("base_rate") or 0) for item in payload or []]

    async def list_all_resources(self) -> List[Resource]:
        payload = await self._request("list_all_resources", "GET", "/resource")
        with _mapping("list_all_resources"):
            items = payload.get("data", []) if isinstance(payload, dict) else payload or []
            return [
                Resource(
                    id=_ref(item.get("_id") or item.get("id")),
                    name=item.get("name", ""),
                    role=item.get("role"),
                    avatar_url=item.get("avatar_url"),
                    assigned_locations=[
                        {"location_id": _ref(sub)} for sub in item.get("assigned_subprojects") or []
                    ],
                )
                for item in items
            ]

    async def list_billing_records(
        self,
        month: int,
        year: int,
        location_id: Optional[str] = None,
        include_templates: bool = False,
    ) -> List[BillingRecord]:
        params: Dict[str, Any] = {"month": month, "year": year}
        if location_id:
            params["subproject_id"] = location_id
        if include_templates:
            params["include_templates"] = "true"
        payload = await self._request("list_billing_records", "GET", "/billing", params=params)
        with _mapping("list_billing_records"):
            items = payload.get("records", []) if isinstance(payload, dict) else payload or []
            return [_record_from_json(item) for item in items]

    async def create_billing_record(self, payload: BillingRecordPayload) -> str:
        created = await self._request("create_billing_record", "POST", "/billing", json=_record_to_json(payload))
        with _mapping("create_billing_record"):
            record_id = _ref((created or {}).get("_id") or (created or {}).get("id"))
        if not record_id:
            raise BillingStoreError("create_billing_record", "response did not include a record id")
        return record_id

    async def update_billing_record(self, record_id: str, payload: BillingRecordPayload) -> None:
        await self._request("update_billing_record", "PUT", f"/billing/{record_id}", json=_record_to_json(payload))

    async def create_invoice(self, request: CreateInvoiceRequest) -> Invoice:
        body = {
            "billing_record_ids": request.billing_record_ids,
            "month": request.month,
            "year": request.year,
            **request.totals.model_dump(),
            "lines": [line.model_dump(mode="json") for line in request.lines],
        }
        created = await self._request("create_invoice", "POST", "/invoices", json=body)
        with _mapping("create_invoice"):
            created = dict(created or {})
            created.setdefault("billing_record_ids", request.billing_record_ids)
            created.setdefault("month", request.month)
            created.setdefault("year", request.year)
            return _invoice_from_json(created)

    async def list_invoices(self) -> List[Invoice]:
        payload = await self._request("list_invoices", "GET", "/invoices")
        with _mapping("list_invoices"):
            return [_invoice_from_json(item) for item in payload or []]

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        try:
            payload = await self._request("get_invoice", "GET", f"/invoices/{invoice_id}")
        except BillingStoreError as exc:
            if exc.status_code == 404:
                return None
            raise
        with _mapping("get_invoice"):
            return _invoice_from_json(payload) if payload else None
