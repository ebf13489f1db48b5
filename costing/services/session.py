from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from ..models import BillingRow, InvoiceOutcome, ReconcileFilter
from ..repos.billing_store import BillingStore
from .caches import RateCatalogCache, ResourceDirectoryCache


logger = logging.getLogger(__name__)


class RowBusyError(RuntimeError):
    def __init__(self, unique_ids: Iterable[str]) -> None:
        self.unique_ids = sorted(unique_ids)
        super().__init__(f"Rows already synchronising: {', '.join(self.unique_ids)}")


class BillingView:
    """The in-memory row collection of the latest reconciliation pass."""

    def __init__(self) -> None:
        self.filter: Optional[ReconcileFilter] = None
        self._rows: Dict[str, BillingRow] = {}
        self._in_flight: set[str] = set()

    def load(self, filter_: ReconcileFilter, rows: Iterable[BillingRow]) -> None:
        self.filter = filter_
        self._rows = {row.unique_id: row for row in rows}

    def matches(self, filter_: ReconcileFilter) -> bool:
        return self.filter is not None and self.filter == filter_

    def rows(self) -> List[BillingRow]:
        return list(self._rows.values())

    def get(self, unique_id: str) -> Optional[BillingRow]:
        return self._rows.get(unique_id)

    def put(self, row: BillingRow) -> None:
        # rows from a superseded pass must not leak into the current one
        if row.unique_id in self._rows:
            self._rows[row.unique_id] = row

    def is_busy(self, unique_id: str) -> bool:
        return unique_id in self._in_flight

    @contextmanager
    def claim(self, unique_ids: Iterable[str]) -> Iterator[None]:
        wanted = set(unique_ids)
        busy = wanted & self._in_flight
        if busy:
            raise RowBusyError(busy)
        self._in_flight |= wanted
        try:
            yield
        finally:
            self._in_flight -= wanted


class CostingSession:
    def __init__(self, session_id: str, store: BillingStore) -> None:
        self.session_id = session_id
        self.store = store
        self.rates = RateCatalogCache(store)
        self.resources = ResourceDirectoryCache(store)
        self.view = BillingView()
        self.last_outcome: Optional[InvoiceOutcome] = None


class SessionRegistry:
    def __init__(self, store_factory: Callable[[], BillingStore]) -> None:
        self._store_factory = store_factory
        self._store: Optional[BillingStore] = None
        self._sessions: Dict[str, CostingSession] = {}

    @property
    def store(self) -> BillingStore:
        if self._store is None:
            self._store = self._store_factory()
        return self._store

    def get(self, session_id: str) -> CostingSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = CostingSession(session_id, self.store)
            self._sessions[session_id] = session
            logger.info("Opened costing session %s", session_id)
        return session

    def discard(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Closed costing session %s", session_id)

    def reset(self, store: Optional[BillingStore] = None) -> None:
        self._sessions.clear()
        self._store = store
