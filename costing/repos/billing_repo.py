from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from ..db import pool
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
from .billing_store import BillingStoreError, format_invoice_number


logger = logging.getLogger(__name__)

T = TypeVar("T")

_RECORD_COLUMNS = """
    id, project_id, location_id, resource_id, resource_name, hours, productivity_level,
    rate, flat_rate, costing, total_amount, description, billable_status, month, year
"""

_INVOICE_COLUMNS = """
    id, invoice_number, month, year, total_costing_amount, total_billing_amount,
    total_billable_amount, total_non_billable_amount, lines, created_at
"""


def _to_float(value: Optional[Decimal]) -> float:
    return float(value) if value is not None else 0.0


def _record_from_row(row: Dict[str, Any]) -> BillingRecord:
    data = dict(row)
    for key in ("hours", "rate", "flat_rate", "costing", "total_amount"):
        data[key] = _to_float(data.get(key))
    return BillingRecord.model_validate(data)


def _invoice_from_row(row: Dict[str, Any], record_ids: List[str]) -> Invoice:
    data = dict(row)
    for key in ("total_costing_amount", "total_billing_amount", "total_billable_amount", "total_non_billable_amount"):
        data[key] = _to_float(data.get(key))
    data["lines"] = data.get("lines") or []
    data["billing_record_ids"] = record_ids
    return Invoice.model_validate(data)


def _guarded(operation: str):
    """Run a blocking psycopg call off the event loop and normalise its failures."""

    def decorator(func: Callable[..., T]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await asyncio.to_thread(func, *args, **kwargs)
            except psycopg.Error as exc:
                logger.warning("Postgres billing store %s failed: %s", operation, exc)
                raise BillingStoreError(operation, str(exc)) from exc

        return wrapper

    return decorator


class PgBillingStore:
    @_guarded("list_projects")
    def list_projects(self) -> List[Project]:
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT id, name FROM costing.projects ORDER BY name")
                projects = {row["id"]: Project(id=row["id"], name=row["name"]) for row in cur.fetchall()}
                cur.execute(
                    """
                    SELECT id, project_id, name, flat_rate
                    FROM costing.locations
                    ORDER BY name
                    """
                )
                for row in cur.fetchall():
                    project = projects.get(row["project_id"])
                    if project is None:
                        continue
                    project.locations.append(
                        Location(
                            id=row["id"],
                            project_id=row["project_id"],
                            name=row["name"],
                            flat_rate=_to_float(row["flat_rate"]),
                        )
                    )
        return list(projects.values())

    @_guarded("list_rate_tiers")
    def list_rate_tiers(self, location_id: str) -> List[RateTier]:
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT level, base_rate
                    FROM costing.rate_tiers
                    WHERE location_id = %s
                    ORDER BY sequence, level
                    """,
                    (location_id,),
                )
                rows = cur.fetchall()
        return [RateTier(level=row["level"], base_rate=_to_float(row["base_rate"])) for row in rows]

    @_guarded("list_all_resources")
    def list_all_resources(self) -> List[Resource]:
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT r.id, r.name, r.role, r.avatar_url,
                           COALESCE(
                               ARRAY_AGG(a.location_id ORDER BY a.location_id)
                                   FILTER (WHERE a.location_id IS NOT NULL),
                               ARRAY[]::TEXT[]
                           ) AS location_ids
                    FROM costing.resources r
                    LEFT JOIN costing.resource_assignments a ON a.resource_id = r.id
                    GROUP BY r.id, r.name, r.role, r.avatar_url
                    ORDER BY r.name
                    """
                )
                rows = cur.fetchall()
        return [
            Resource(
                id=row["id"],
                name=row["name"],
                role=row["role"],
                avatar_url=row["avatar_url"],
                assigned_locations=[{"location_id": location_id} for location_id in row["location_ids"]],
            )
            for row in rows
        ]

    @_guarded("list_billing_records")
    def list_billing_records(
        self,
        month: int,
        year: int,
        location_id: Optional[str] = None,
        include_templates: bool = False,
    ) -> List[BillingRecord]:
        period_clause = "(month = %s AND year = %s)"
        if include_templates:
            period_clause = f"({period_clause} OR (month IS NULL AND year IS NULL))"
        filters = [period_clause]
        params: List[Any] = [month, year]
        if location_id:
            filters.append("location_id = %s")
            params.append(location_id)

        query = f"""
            SELECT {_RECORD_COLUMNS}
            FROM costing.billing_records
            WHERE {' AND '.join(filters)}
            ORDER BY updated_at
        """
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [_record_from_row(row) for row in rows]

    @_guarded("create_billing_record")
    def create_billing_record(self, payload: BillingRecordPayload) -> str:
        values = payload.model_dump()
        values["id"] = f"bill-{uuid.uuid4().hex[:12]}"
        with pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO costing.billing_records ({_RECORD_COLUMNS})
                    VALUES (
                        %(id)s, %(project_id)s, %(location_id)s, %(resource_id)s, %(resource_name)s,
                        %(hours)s, %(productivity_level)s, %(rate)s, %(flat_rate)s, %(costing)s,
                        %(total_amount)s, %(description)s, %(billable_status)s, %(month)s, %(year)s
                    )
                    RETURNING id
                    """,
                    values,
                )
                (record_id,) = cur.fetchone()
            conn.commit()
        return record_id

    @_guarded("update_billing_record")
    def update_billing_record(self, record_id: str, payload: BillingRecordPayload) -> None:
        values = payload.model_dump()
        values["id"] = record_id
        with pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE costing.billing_records SET
                        project_id = %(project_id)s,
                        location_id = %(location_id)s,
                        resource_id = %(resource_id)s,
                        resource_name = %(resource_name)s,
                        hours = %(hours)s,
                        productivity_level = %(productivity_level)s,
                        rate = %(rate)s,
                        flat_rate = %(flat_rate)s,
                        costing = %(costing)s,
                        total_amount = %(total_amount)s,
                        description = %(description)s,
                        billable_status = %(billable_status)s,
                        month = %(month)s,
                        year = %(year)s,
                        updated_at = NOW()
                    WHERE id = %(id)s
                    """,
                    values,
                )
                if cur.rowcount == 0:
                    raise psycopg.DataError(f"billing record {record_id} not found")
            conn.commit()

    @_guarded("create_invoice")
    def create_invoice(self, request: CreateInvoiceRequest) -> Invoice:
        invoice_id = str(uuid.uuid4())
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                # serialise numbering per period
                cur.execute("SELECT pg_advisory_xact_lock(%s)", (request.year * 100 + request.month,))
                cur.execute(
                    "SELECT COUNT(*) AS issued FROM costing.invoices WHERE month = %s AND year = %s",
                    (request.month, request.year),
                )
                issued = cur.fetchone()["issued"]
                totals = request.totals.model_dump()
                cur.execute(
                    f"""
                    INSERT INTO costing.invoices ({_INVOICE_COLUMNS})
                    VALUES (
                        %(id)s, %(invoice_number)s, %(month)s, %(year)s, %(total_costing_amount)s,
                        %(total_billing_amount)s, %(total_billable_amount)s, %(total_non_billable_amount)s,
                        %(lines)s, NOW()
                    )
                    RETURNING {_INVOICE_COLUMNS}
                    """,
                    {
                        "id": invoice_id,
                        "invoice_number": format_invoice_number(request.year, request.month, issued + 1),
                        "month": request.month,
                        "year": request.year,
                        "lines": Json([line.model_dump(mode="json") for line in request.lines]),
                        **totals,
                    },
                )
                row = cur.fetchone()
                for record_id in request.billing_record_ids:
                    cur.execute(
                        "INSERT INTO costing.invoice_records (invoice_id, billing_record_id) VALUES (%s, %s)",
                        (invoice_id, record_id),
                    )
            conn.commit()
        logger.info("Created invoice %s for %s/%s", row["invoice_number"], request.month, request.year)
        return _invoice_from_row(row, list(request.billing_record_ids))

    def _invoice_record_ids(self, cur, invoice_ids: List[str]) -> Dict[str, List[str]]:
        ids: Dict[str, List[str]] = {invoice_id: [] for invoice_id in invoice_ids}
        if not invoice_ids:
            return ids
        cur.execute(
            """
            SELECT invoice_id, billing_record_id
            FROM costing.invoice_records
            WHERE invoice_id = ANY(%s)
            ORDER BY billing_record_id
            """,
            (invoice_ids,),
        )
        for row in cur.fetchall():
            ids[row["invoice_id"]].append(row["billing_record_id"])
        return ids

    @_guarded("list_invoices")
    def list_invoices(self) -> List[Invoice]:
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_INVOICE_COLUMNS} FROM costing.invoices ORDER BY created_at DESC")
                rows = cur.fetchall()
                record_ids = self._invoice_record_ids(cur, [row["id"] for row in rows])
        return [_invoice_from_row(row, record_ids[row["id"]]) for row in rows]

    @_guarded("get_invoice")
    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_INVOICE_COLUMNS} FROM costing.invoices WHERE id = %s", (invoice_id,))
                row = cur.fetchone()
                if not row:
                    return None
                record_ids = self._invoice_record_ids(cur, [invoice_id])
        return _invoice_from_row(row, record_ids[invoice_id])
