from __future__ import annotations

from typing import Optional

import pytest

from costing.models import (
    BillingRecord,
    BillingRecordPayload,
    CreateInvoiceRequest,
    Location,
    Project,
    RateTier,
    Resource,
)
from costing.repos.billing_store import BillingStoreError
from costing.repos.memory_store import MemoryBillingStore
from costing.routers.deps import registry
from costing.services.session import CostingSession

MONTH = 9
YEAR = 2025


def _tiers(low: float, medium: float, high: float, best: float) -> list[RateTier]:
    return [
        RateTier(level="low", base_rate=low),
        RateTier(level="medium", base_rate=medium),
        RateTier(level="high", base_rate=high),
        RateTier(level="best", base_rate=best),
    ]


class FlakyBillingStore(MemoryBillingStore):
    """In-memory store that fails on demand.

    ``failing`` holds operation names (``"create_invoice"``) or
    operation/resource pairs (``"create_billing_record:res-1"``).
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failing: set[str] = set()

    def _check(self, operation: str, key: Optional[str] = None) -> None:
        if operation in self.failing or (key is not None and f"{operation}:{key}" in self.failing):
            raise BillingStoreError(operation, "simulated outage")

    async def list_projects(self):
        self._check("list_projects")
        return await super().list_projects()

    async def list_rate_tiers(self, location_id: str):
        self._check("list_rate_tiers", location_id)
        return await super().list_rate_tiers(location_id)

    async def list_all_resources(self):
        self._check("list_all_resources")
        return await super().list_all_resources()

    async def list_billing_records(self, month, year, location_id=None, include_templates=False):
        self._check("list_billing_records")
        return await super().list_billing_records(month, year, location_id, include_templates)

    async def create_billing_record(self, payload: BillingRecordPayload) -> str:
        self._check("create_billing_record", payload.resource_id)
        return await super().create_billing_record(payload)

    async def update_billing_record(self, record_id: str, payload: BillingRecordPayload) -> None:
        self._check("update_billing_record", payload.resource_id)
        await super().update_billing_record(record_id, payload)

    async def create_invoice(self, request: CreateInvoiceRequest):
        self._check("create_invoice")
        return await super().create_invoice(request)

    def writes(self) -> list[str]:
        return [call for call in self.calls if call.startswith(("create_billing_record", "update_billing_record"))]


def make_record(record_id: str, location_id: str, resource_id: str, **overrides) -> BillingRecord:
    project_id = "mro" if location_id == "loc-3" else "verisma"
    values = dict(
        id=record_id,
        project_id=project_id,
        location_id=location_id,
        resource_id=resource_id,
        hours=0.0,
        productivity_level="medium",
        rate=10.0,
        flat_rate=20.0,
        month=MONTH,
        year=YEAR,
    )
    values.update(overrides)
    return BillingRecord(**values)


@pytest.fixture
def store() -> FlakyBillingStore:
    projects = [
        Project(
            id="verisma",
            name="Verisma",
            locations=[
                Location(id="loc-1", project_id="verisma", name="NYU Langone", flat_rate=20.0),
                Location(id="loc-2", project_id="verisma", name="Baylor", flat_rate=18.0),
            ],
        ),
        Project(
            id="mro",
            name="MRO",
            locations=[Location(id="loc-3", project_id="mro", name="UCSF", flat_rate=22.0)],
        ),
    ]
    resources = [
        Resource(id="res-1", name="Aisha Khan", role="ROI Specialist", assigned_locations=[{"location_id": "loc-1"}]),
        Resource(
            id="res-2",
            name="Omar Siddiqui",
            role="Logging Associate",
            assigned_locations=[{"location_id": "loc-1"}, {"location_id": "loc-2"}],
        ),
        Resource(id="res-3", name="Sana Malik", role="QA Reviewer", assigned_locations=[{"location_id": "loc-3"}]),
    ]
    rate_tiers = {
        "loc-1": _tiers(8.0, 10.0, 25.0, 30.0),
        "loc-2": _tiers(7.0, 9.0, 11.0, 14.0),
        "loc-3": _tiers(9.0, 11.0, 13.0, 16.0),
    }
    return FlakyBillingStore(projects=projects, resources=resources, rate_tiers=rate_tiers)


@pytest.fixture
def session(store) -> CostingSession:
    return CostingSession("test", store)


@pytest.fixture
def use_store(store):
    registry.reset(store)
    try:
        yield store
    finally:
        registry.reset()
