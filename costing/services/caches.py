from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from ..models import RateTier, Resource
from ..repos.billing_store import BillingStore
from .fanout import gather_all


logger = logging.getLogger(__name__)


class RateCatalogCache:
    """Session-scoped ``location_id -> rate tiers`` map.

    Entries are written once and never invalidated for the lifetime of the
    owning session. A failed fetch leaves the map untouched.
    """

    def __init__(self, store: BillingStore) -> None:
        self._store = store
        self._rates: Dict[str, List[RateTier]] = {}

    def __contains__(self, location_id: str) -> bool:
        return location_id in self._rates

    def __len__(self) -> int:
        return len(self._rates)

    def peek(self, location_id: str) -> Optional[List[RateTier]]:
        rates = self._rates.get(location_id)
        return list(rates) if rates is not None else None

    async def get_rates(self, location_id: str) -> List[RateTier]:
        cached = self._rates.get(location_id)
        if cached is not None:
            return list(cached)
        rates = await self._store.list_rate_tiers(location_id)
        # a concurrent miss may have filled the key while we were waiting
        self._rates.setdefault(location_id, list(rates))
        logger.info("Cached %s rate tiers for location %s", len(rates), location_id)
        return list(self._rates[location_id])

    async def prime(self, location_ids: Iterable[str]) -> Dict[str, List[RateTier]]:
        ordered = list(dict.fromkeys(location_ids))
        missing = [location_id for location_id in ordered if location_id not in self._rates]
        if missing:
            await gather_all(*(self.get_rates(location_id) for location_id in missing))
        return {location_id: list(self._rates[location_id]) for location_id in ordered}

    async def rate_for(self, location_id: str, level: str) -> float:
        return resolve_rate(await self.get_rates(location_id), level)


def resolve_rate(rates: Iterable[RateTier], level: Optional[str]) -> float:
    wanted = (level or "medium").strip().lower()
    for tier in rates:
        if tier.level == wanted:
            return tier.base_rate
    return 0.0


class ResourceDirectoryCache:
    def __init__(self, store: BillingStore) -> None:
        self._store = store
        self._resources: Optional[List[Resource]] = None

    @property
    def loaded(self) -> bool:
        return self._resources is not None

    def remember(self, resources: Iterable[Resource]) -> None:
        """Fill the directory from a listing fetched elsewhere, once."""
        if self._resources is None:
            self._resources = list(resources)
            logger.info("Loaded resource directory with %s resources", len(self._resources))

    async def get_all_resources(self) -> List[Resource]:
        if self._resources is None:
            resources = await self._store.list_all_resources()
            if self._resources is None:
                self._resources = list(resources)
                logger.info("Loaded resource directory with %s resources", len(resources))
        return list(self._resources)

    async def by_id(self) -> Dict[str, Resource]:
        return {resource.id: resource for resource in await self.get_all_resources()}
