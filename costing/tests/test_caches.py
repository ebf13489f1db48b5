from __future__ import annotations

import asyncio

import pytest

from costing.models import RateTier
from costing.repos.billing_store import BillingStoreError
from costing.services.caches import RateCatalogCache, ResourceDirectoryCache, resolve_rate


def test_rates_fetched_once_per_location(store):
    cache = RateCatalogCache(store)

    async def scenario():
        first = await cache.get_rates("loc-1")
        second = await cache.get_rates("loc-1")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second
    assert store.calls.count("list_rate_tiers:loc-1") == 1
    assert "loc-1" in cache


def test_prime_only_fetches_missing_locations(store):
    cache = RateCatalogCache(store)
    asyncio.run(cache.get_rates("loc-1"))

    rates = asyncio.run(cache.prime(["loc-1", "loc-2", "loc-1"]))

    assert list(rates) == ["loc-1", "loc-2"]
    assert store.calls.count("list_rate_tiers:loc-1") == 1
    assert store.calls.count("list_rate_tiers:loc-2") == 1


def test_failed_fetch_leaves_other_keys_usable(store):
    cache = RateCatalogCache(store)
    store.failing.add("list_rate_tiers:loc-2")

    with pytest.raises(BillingStoreError):
        asyncio.run(cache.prime(["loc-1", "loc-2"]))

    assert "loc-2" not in cache
    assert cache.peek("loc-1") is not None
    assert asyncio.run(cache.rate_for("loc-1", "high")) == 25.0


def test_resolve_rate_is_case_insensitive_and_defaults_to_zero():
    tiers = [RateTier(level="medium", base_rate=10.0), RateTier(level="High", base_rate=25.0)]

    assert resolve_rate(tiers, "HIGH") == 25.0
    assert resolve_rate(tiers, None) == 10.0
    assert resolve_rate(tiers, "best") == 0.0


def test_resource_directory_loaded_once(store):
    cache = ResourceDirectoryCache(store)

    async def scenario():
        await cache.get_all_resources()
        return await cache.by_id()

    by_id = asyncio.run(scenario())
    assert set(by_id) == {"res-1", "res-2", "res-3"}
    assert store.calls.count("list_all_resources") == 1
    assert cache.loaded


def test_remembered_directory_is_not_refetched(store):
    cache = ResourceDirectoryCache(store)

    cache.remember(store.resources[:1])
    cache.remember(store.resources)
    by_id = asyncio.run(cache.by_id())

    assert set(by_id) == {"res-1"}
    assert "list_all_resources" not in store.calls
