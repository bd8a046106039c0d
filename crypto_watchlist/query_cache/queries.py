"""
Cached market data queries with per-operation freshness policies.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Final

from ..market_data.client import MarketDataClient
from ..market_data.models import ChartData, CryptoDetails, Cryptocurrency, SearchResult
from .cache import QueryCache, QueryKey, QueryPolicy, QueryResult
from .poller import QueryPoller
from .settings import QueryCacheSettings, query_cache_settings

CRYPTO_LIST: Final[str] = "cryptoList"
CRYPTO_SEARCH: Final[str] = "cryptoSearch"
CRYPTO_DETAILS: Final[str] = "cryptoDetails"
CHART_DATA: Final[str] = "chartData"


class CryptoQueries:
    """The market data client's operations behind a shared QueryCache."""

    def __init__(
        self,
        client: MarketDataClient,
        cache: QueryCache | None = None,
        settings: QueryCacheSettings | None = None,
    ) -> None:
        settings = settings or query_cache_settings
        self.client = client
        self.cache = cache or QueryCache(gc_time=settings.gc_time)
        self.list_policy = QueryPolicy(
            stale_time=settings.list_stale_time,
            refetch_interval=settings.list_refetch_interval,
        )
        self.search_policy = QueryPolicy(stale_time=settings.search_stale_time)
        self.details_policy = QueryPolicy(stale_time=settings.details_stale_time)
        self.chart_policy = QueryPolicy(stale_time=settings.chart_stale_time)

    @staticmethod
    def list_key(ids: Sequence[str] | None) -> QueryKey:
        return (CRYPTO_LIST, tuple(ids) if ids else None)

    def _list_fetcher(
        self, ids: Sequence[str] | None
    ) -> Callable[[], Awaitable[list[Cryptocurrency]]]:
        frozen = list(ids) if ids else None
        return lambda: self.client.list_markets(frozen)

    async def crypto_list(
        self, ids: Sequence[str] | None = None
    ) -> QueryResult[list[Cryptocurrency]]:
        """Watchlist coins when `ids` is non-empty, otherwise the top coins."""
        return await self.cache.query(
            self.list_key(ids), self._list_fetcher(ids), self.list_policy
        )

    def crypto_list_poller(
        self,
        ids: Sequence[str] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> QueryPoller:
        """Poller that keeps the market list warm on its refetch interval."""
        return QueryPoller(
            self.cache,
            self.list_key(ids),
            self._list_fetcher(ids),
            self.list_policy,
            sleep=sleep,
        )

    def retarget_list_poller(
        self, poller: QueryPoller, ids: Sequence[str] | None
    ) -> None:
        poller.retarget(self.list_key(ids), self._list_fetcher(ids))

    async def crypto_search(self, query: str) -> QueryResult[list[SearchResult]]:
        """Search coins. An empty query is disabled and makes no call."""
        if not query:
            return self.cache.disabled_result([])
        return await self.cache.query(
            (CRYPTO_SEARCH, query),
            lambda: self.client.search(query),
            self.search_policy,
        )

    async def crypto_details(self, coin_id: str) -> QueryResult[CryptoDetails]:
        if not coin_id:
            return self.cache.disabled_result()
        return await self.cache.query(
            (CRYPTO_DETAILS, coin_id),
            lambda: self.client.get_details(coin_id),
            self.details_policy,
        )

    async def chart_data(self, coin_id: str, days: float) -> QueryResult[ChartData]:
        if not coin_id:
            return self.cache.disabled_result()
        return await self.cache.query(
            (CHART_DATA, coin_id, days),
            lambda: self.client.get_chart_series(coin_id, days),
            self.chart_policy,
        )

    async def multiple_crypto_details(
        self, coin_ids: Sequence[str]
    ) -> list[QueryResult[CryptoDetails]]:
        """Details for several coins, one cache entry per coin."""
        return list(
            await asyncio.gather(*(self.crypto_details(coin_id) for coin_id in coin_ids))
        )
