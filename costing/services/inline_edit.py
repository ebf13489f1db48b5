from __future__ import annotations

import logging
import math
from typing import Any, Optional

from ..models import BillingRow, EditResult, normalise_level
from ..repos.billing_store import BillingStore, BillingStoreError
from .session import CostingSession, RowBusyError


logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("hours", "productivity_level", "description", "is_billable")

# camelCase names the console sends
_FIELD_ALIASES = {
    "productivityLevel": "productivity_level",
    "productivity": "productivity_level",
    "isBillable": "is_billable",
}


async def sync_row(
    store: BillingStore,
    row: BillingRow,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> BillingRow:
    """Persist one row: update a monthly record in place, otherwise create one.

    Returns the row as it now exists in the store.
    """
    payload = row.to_payload(month, year)
    if row.needs_create:
        record_id = await store.create_billing_record(payload)
        return row.model_copy(update={"billing_id": record_id, "is_monthly_record": True})
    await store.update_billing_record(row.billing_id, payload)
    return row


def _parse_hours(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("hours must be a number")
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValueError("hours must be a number") from None
    if not math.isfinite(hours) or hours < 0:
        raise ValueError("hours must be a non-negative number")
    return hours


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError("isBillable must be true or false")


class InlineEditSynchronizer:
    def __init__(self, session: CostingSession) -> None:
        self.session = session

    async def _edited(self, row: BillingRow, field: str, value: Any) -> BillingRow:
        if field == "hours":
            return row.model_copy(update={"hours": _parse_hours(value)})
        if field == "productivity_level":
            level = normalise_level(value)
            rate = await self.session.rates.rate_for(row.location_id, level)
            return row.model_copy(update={"productivity_level": level, "rate": rate})
        if field == "description":
            return row.model_copy(update={"description": None if value is None else str(value)})
        return row.model_copy(update={"is_billable": _parse_flag(value)})

    async def apply_edit(self, row: BillingRow, field: str, value: Any) -> EditResult:
        field = _FIELD_ALIASES.get(field, field)
        if field not in EDITABLE_FIELDS:
            return EditResult.failure("validation", f"Field '{field}' cannot be edited", row=row)
        if not row.is_editable:
            return EditResult.failure("validation", "Row is read-only; the assignment no longer exists", row=row)

        view = self.session.view
        try:
            with view.claim([row.unique_id]):
                try:
                    updated = await self._edited(row, field, value)
                except ValueError as exc:
                    return EditResult.failure("validation", str(exc), row=row)
                except BillingStoreError as exc:
                    return EditResult.failure("fetch", str(exc), row=row)

                snapshot = row
                view.put(updated)
                try:
                    synced = await sync_row(self.session.store, updated)
                except BillingStoreError as exc:
                    view.put(snapshot)
                    logger.warning("Reverted %s after failed save of %s: %s", row.unique_id, field, exc)
                    return EditResult.failure("sync", str(exc), row=snapshot)
                view.put(synced)
        except RowBusyError as exc:
            return EditResult.failure("busy", str(exc), row=row)

        logger.info(
            "Saved %s=%r on %s (billing record %s)", field, value, row.unique_id, synced.billing_id
        )
        return EditResult.success(synced)
