"""
Keyed, time-based cache for market data queries.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, Final, Generic, TypeVar

T = TypeVar("T")

QueryKey = tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]

DEFAULT_GC_TIME: Final[float] = 300

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryPolicy:
    """Freshness rules for one kind of query."""

    stale_time: float
    refetch_interval: float | None = None


@dataclass
class CacheEntry:
    """Last known value and error for a query key."""

    data: Any = None
    has_data: bool = False
    fetched_at: float | None = None
    error: BaseException | None = None
    invalidated: bool = False
    used_at: float | None = None

    def is_stale(self, now: float, policy: QueryPolicy) -> bool:
        if not self.has_data or self.fetched_at is None or self.invalidated:
            return True
        return now - self.fetched_at > policy.stale_time


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """What a consumer sees for a query: data plus loading and error flags."""

    data: T | None
    is_loading: bool = False
    is_fetching: bool = False
    is_error: bool = False
    error: BaseException | None = None
    is_stale: bool = False
    updated_at: float | None = None


class QueryCache:
    """
    One entry per (operation, params) key with at most one fetch in flight.

    Fetch errors are never raised to callers. They are recorded on the entry
    and reported through QueryResult, next to whatever data was cached before.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        gc_time: float = DEFAULT_GC_TIME,
    ) -> None:
        self._clock = clock
        self.gc_time = gc_time
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._in_flight: dict[QueryKey, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, key: QueryKey, policy: QueryPolicy | None = None) -> QueryResult:
        """Read an entry without fetching."""
        return self._result(key, policy)

    async def query(
        self, key: QueryKey, fetcher: Fetcher, policy: QueryPolicy
    ) -> QueryResult:
        """
        Return the cached value for `key`, fetching when needed.

        Fresh entries are served without a call. Absent entries wait for a
        fetch. Stale entries are served as-is while one background refetch
        runs. Entries nobody has used for `gc_time` seconds are dropped.
        """
        self.collect_garbage()
        entry = self._touch(key)

        if not entry.has_data:
            await self._await_fetch(key, fetcher)
        elif entry.is_stale(self._clock(), policy):
            self._start_fetch(key, fetcher)

        return self._result(key, policy)

    async def refetch(
        self, key: QueryKey, fetcher: Fetcher, policy: QueryPolicy
    ) -> QueryResult:
        """Fetch regardless of freshness, joining a fetch already in flight."""
        self._touch(key)
        await self._await_fetch(key, fetcher)
        return self._result(key, policy)

    def invalidate(self, prefix: QueryKey = ()) -> int:
        """Mark every entry whose key starts with `prefix` as stale."""
        count = 0
        for key, entry in self._entries.items():
            if key[: len(prefix)] == prefix:
                entry.invalidated = True
                count += 1
        logger.debug(f"Invalidated {count} cache entries for prefix {prefix!r}")
        return count

    def remove(self, key: QueryKey) -> None:
        """Forget an entry entirely."""
        self._entries.pop(key, None)

    def collect_garbage(self) -> int:
        """Drop entries unused for longer than `gc_time` with no fetch in flight."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if key not in self._in_flight
            and entry.used_at is not None
            and now - entry.used_at > self.gc_time
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} unused cache entries")
        return len(expired)

    def in_flight(self, key: QueryKey) -> bool:
        return key in self._in_flight

    async def wait_idle(self) -> None:
        """Wait for every fetch currently in flight."""
        while self._in_flight:
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending fetches."""
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()

    @staticmethod
    def disabled_result(default: Any = None) -> QueryResult:
        """Result for a query whose enabled condition does not hold."""
        return QueryResult(data=default)

    def _touch(self, key: QueryKey) -> CacheEntry:
        entry = self._entries.setdefault(key, CacheEntry())
        entry.used_at = self._clock()
        return entry

    def _start_fetch(self, key: QueryKey, fetcher: Fetcher) -> asyncio.Task[None]:
        if (task := self._in_flight.get(key)) is not None:
            return task

        task = asyncio.create_task(self._run_fetch(key, fetcher))
        self._in_flight[key] = task
        return task

    async def _await_fetch(self, key: QueryKey, fetcher: Fetcher) -> None:
        # Shielded so that a cancelled consumer does not abort the shared fetch.
        await asyncio.shield(self._start_fetch(key, fetcher))

    async def _run_fetch(self, key: QueryKey, fetcher: Fetcher) -> None:
        entry = self._entries.setdefault(key, CacheEntry())
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Query {key!r} failed: {e}")
            entry.error = e
            return
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

        entry.data = data
        entry.has_data = True
        entry.fetched_at = self._clock()
        entry.error = None
        entry.invalidated = False
        logger.debug(f"Query {key!r} refreshed")

    def _result(self, key: QueryKey, policy: QueryPolicy | None) -> QueryResult:
        entry = self._entries.get(key) or CacheEntry()
        fetching = key in self._in_flight
        stale = policy is not None and entry.is_stale(self._clock(), policy)
        return QueryResult(
            data=entry.data,
            is_loading=fetching and not entry.has_data,
            is_fetching=fetching,
            is_error=entry.error is not None,
            error=entry.error,
            is_stale=stale and entry.has_data,
            updated_at=entry.fetched_at,
        )
