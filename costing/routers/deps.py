from __future__ import annotations

from fastapi import Header

from ..config import settings
from ..repos.billing_api import HttpBillingStore
from ..repos.billing_repo import PgBillingStore
from ..repos.billing_store import BillingStore
from ..repos.memory_store import MemoryBillingStore
from ..services.session import CostingSession, SessionRegistry


def build_store(kind: str) -> BillingStore:
    if kind == "http":
        return HttpBillingStore()
    if kind == "memory":
        return MemoryBillingStore.from_fixtures()
    return PgBillingStore()


registry = SessionRegistry(lambda: build_store(settings.billing_store))


def get_session(x_costing_session: str = Header(default="default")) -> CostingSession:
    return registry.get(x_costing_session.strip() or "default")
