from decimal import Decimal

import pytest

from budget.approval.service import ApprovalService
from budget.core.cache import CacheKeys, MemoryCache, NullCache, build_cache, invalidate_approvals
from budget.core.config import Settings
from budget.core.period import Period
from budget.dashboard.service import DashboardService
from budget.expense.schemas import ExpenseCreate
from budget.expense.service import SharedExpenseService


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_fetch(values):
    calls = []

    async def fetch():
        calls.append(1)
        return values[len(calls) - 1]

    return fetch, calls


@pytest.mark.asyncio
async def test_memory_cache_hit_and_expiry():
    ticker = Ticker()
    cache = MemoryCache(clock=ticker)
    fetch, calls = make_fetch(["first", "second"])

    assert await cache.get_or_set("k", 10, fetch) == "first"
    ticker.now = 9.9
    assert await cache.get_or_set("k", 10, fetch) == "first"
    ticker.now = 10.0
    assert await cache.get_or_set("k", 10, fetch) == "second"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_memory_cache_invalidation():
    cache = MemoryCache()
    fetch, calls = make_fetch(["a", "b", "c", "d"])
    await cache.get_or_set("household:1:dashboard", 60, fetch)
    await cache.get_or_set("household:1:approvals:pending", 60, fetch)
    await cache.get_or_set("household:2:approvals:pending", 60, fetch)

    await cache.invalidate("household:1:dashboard", "missing")
    assert len(cache) == 2

    await cache.invalidate_prefix("household:1:")
    assert len(cache) == 1
    assert await cache.get_or_set("household:2:approvals:pending", 60, fetch) == "c"


@pytest.mark.asyncio
async def test_null_cache_always_fetches():
    cache = NullCache()
    fetch, calls = make_fetch([1, 2])

    assert await cache.get_or_set("k", 60, fetch) == 1
    assert await cache.get_or_set("k", 60, fetch) == 2
    await cache.invalidate_prefix("k")


def test_build_cache_follows_settings():
    assert isinstance(build_cache(Settings(CACHE_ENABLED=True)), MemoryCache)
    assert isinstance(build_cache(Settings(CACHE_ENABLED=False)), NullCache)


def test_household_keys_share_the_household_prefix():
    keys = CacheKeys(Settings())
    march = Period(2026, 3)
    prefix = keys.household_prefix("h1")

    assert keys.dashboard("h1", march, "u1").startswith(prefix)
    assert keys.dashboard("h1", march, "u1") != keys.dashboard("h1", march, "u2")
    assert keys.pending_approvals("h1").startswith(keys.approvals_prefix("h1"))
    assert keys.savings("h1", march) != keys.savings_summary("h1", march)
    assert keys.hash_params({"a": 1, "b": None}) == keys.hash_params({"b": None, "a": 1})


@pytest.mark.asyncio
async def test_pending_list_refreshes_after_cancel(session, clock, household):
    cache = MemoryCache()
    shared = SharedExpenseService(session, cache=cache, clock=clock)
    approvals = ApprovalService(session, cache=cache, clock=clock)
    approval = await shared.propose_create(
        household.alex,
        ExpenseCreate(name="Rent", amount=Decimal("800"), category="RECURRING", frequency="MONTHLY"),
    )

    assert [a.id for a in await approvals.list_pending(household.sam)] == [approval.id]
    await approvals.cancel(household.alex, approval.id)

    assert await approvals.list_pending(household.sam) == []


@pytest.mark.asyncio
async def test_cached_pending_count_follows_proposals(session, clock, household):
    cache = MemoryCache()
    shared = SharedExpenseService(session, cache=cache, clock=clock)
    approvals = ApprovalService(session, cache=cache, clock=clock)
    dashboard = DashboardService(session, cache=cache, clock=clock)
    assert (await dashboard.overview(household.sam)).pending_approvals_count == 0

    approval = await shared.propose_create(
        household.alex,
        ExpenseCreate(name="Rent", amount=Decimal("800"), category="RECURRING", frequency="MONTHLY"),
    )
    assert (await dashboard.overview(household.sam)).pending_approvals_count == 1

    await approvals.cancel(household.alex, approval.id)
    assert (await dashboard.overview(household.sam)).pending_approvals_count == 0


@pytest.mark.asyncio
async def test_invalidate_approvals_keeps_unrelated_keys():
    cache = MemoryCache()
    keys = CacheKeys(Settings())
    march = Period(2026, 3)
    fetch, _ = make_fetch(["a", "b", "c"])

    await cache.get_or_set(keys.dashboard("h1", march, "u1"), 60, fetch)
    await cache.get_or_set(keys.pending_approvals("h1"), 60, fetch)
    await cache.get_or_set(keys.savings("h1", march), 60, fetch)

    await invalidate_approvals(cache, "h1")

    assert len(cache) == 1
