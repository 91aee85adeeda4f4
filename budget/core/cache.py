"""
Cache facade.

The services memoize read models through ``CacheFacade.get_or_set`` and drop
household keys after mutations. Caching is an optimization only: every
service is correct with ``NullCache``.
"""

import hashlib
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple, TypeVar

from budget.core.config import Settings, get_settings
from budget.core.logger import get_logger
from budget.core.period import Period

T = TypeVar("T")

logger = get_logger(__name__)


class CacheFacade(Protocol):
    async def get_or_set(self, key: str, ttl: int, fetch: Callable[[], Awaitable[T]]) -> T:
        ...

    async def invalidate(self, *keys: str) -> None:
        ...

    async def invalidate_prefix(self, prefix: str) -> None:
        ...


class NullCache:
    """Passthrough: always calls ``fetch``."""

    async def get_or_set(self, key: str, ttl: int, fetch: Callable[[], Awaitable[T]]) -> T:
        return await fetch()

    async def invalidate(self, *keys: str) -> None:
        return None

    async def invalidate_prefix(self, prefix: str) -> None:
        return None


class MemoryCache:
    """In-process TTL cache keyed by string."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._clock = clock

    async def get_or_set(self, key: str, ttl: int, fetch: Callable[[], Awaitable[T]]) -> T:
        entry = self._entries.get(key)
        if entry is not None and entry[0] > self._clock():
            logger.debug("cache_hit", key=key)
            return entry[1]

        logger.debug("cache_miss", key=key)
        value = await fetch()
        self._entries[key] = (self._clock() + ttl, value)
        return value

    async def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    async def invalidate_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]
        logger.debug("cache_invalidated", prefix=prefix)

    def __len__(self) -> int:
        return len(self._entries)


class CacheKeys:
    """Key builders. Every household key starts with ``household_prefix``."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.expenses_ttl = settings.CACHE_TTL_EXPENSES
        self.summary_ttl = settings.CACHE_TTL_SUMMARY
        self.settlement_ttl = settings.CACHE_TTL_SETTLEMENT

    @staticmethod
    def household_prefix(household_id: str) -> str:
        return f"household:{household_id}:"

    @staticmethod
    def approvals_prefix(household_id: str) -> str:
        return f"household:{household_id}:approvals:"

    @staticmethod
    def dashboard_prefix(household_id: str) -> str:
        return f"household:{household_id}:dashboard:"

    def dashboard(self, household_id: str, period: Period, user_id: str) -> str:
        # The settlement message and pending count are relative to the viewer
        return f"household:{household_id}:dashboard:{period.year}:{period.month}:{user_id}"

    def settlement(self, household_id: str, period: Period, user_id: str) -> str:
        return f"household:{household_id}:settlement:{period.year}:{period.month}:{user_id}"

    def savings(self, household_id: str, period: Period) -> str:
        return f"household:{household_id}:savings:{period.year}:{period.month}"

    def salaries(self, household_id: str, period: Period) -> str:
        return f"household:{household_id}:salaries:{period.year}:{period.month}"

    def savings_summary(self, household_id: str, period: Period) -> str:
        return f"household:{household_id}:savings-summary:{period.year}:{period.month}"

    def yearly_average(self, household_id: str, period: Period) -> str:
        return f"household:{household_id}:yearly-average:{period.year}:{period.month}"

    def shared_expenses(self, household_id: str, filter_hash: str) -> str:
        return f"household:{household_id}:shared-expenses:{filter_hash}"

    def pending_approvals(self, household_id: str) -> str:
        return f"household:{household_id}:approvals:pending"

    def approval_history(self, household_id: str, status: Optional[str]) -> str:
        return f"household:{household_id}:approvals:history:{status or 'all'}"

    @staticmethod
    def hash_params(params: Dict[str, Any]) -> str:
        payload = json.dumps(params, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode()).hexdigest()[:16]


async def invalidate_approvals(cache: CacheFacade, household_id: str) -> None:
    """Drop approval listings and the per-viewer dashboards that count them."""
    await cache.invalidate_prefix(CacheKeys.approvals_prefix(household_id))
    await cache.invalidate_prefix(CacheKeys.dashboard_prefix(household_id))

def build_cache(settings: Optional[Settings] = None) -> CacheFacade:
    settings = settings or get_settings()
    return MemoryCache() if settings.CACHE_ENABLED else NullCache()
