"""
Dashboard orchestration: ties the watchlist store to the cached market queries.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Final

from ..market_data.models import Cryptocurrency
from ..query_cache.cache import QueryResult
from ..query_cache.poller import QueryPoller
from ..query_cache.queries import CryptoQueries
from ..shared.charts import (
    DEFAULT_TIMEFRAME,
    build_price_series,
    build_sparkline_series,
    build_volume_series,
    days_for_timeframe,
)
from ..shared.formatting import format_currency, format_number, format_percentage
from ..shared.sanitize import sanitize_description
from ..watchlist.sharing import (
    build_share_url,
    consume_share_token,
    encode_watchlist,
    export_watchlist,
    parse_import,
)
from ..watchlist.store import WatchlistStore
from .models import (
    CoinCard,
    CoinLinksResponse,
    DashboardResponse,
    DetailsResponse,
    ManagerResponse,
    QueryState,
    SearchHit,
    SearchResponse,
    ShareResponse,
    SortOption,
)
from .settings import api_settings

SORT_OPTIONS: Final[tuple[SortOption, ...]] = ("market_cap", "price", "change_24h")
DEFAULT_SORT: Final[SortOption] = "market_cap"

WATCHLIST_TITLE: Final[str] = "Your Watchlist"
POPULAR_TITLE: Final[str] = "Popular Cryptocurrencies"
NOT_AVAILABLE: Final[str] = "N/A"

logger = logging.getLogger(__name__)


class UpstreamUnavailableError(Exception):
    """Raised when a query failed and there is no cached data to fall back on."""

    def __init__(self, what: str, cause: BaseException | None):
        self.what = what
        self.cause = cause
        super().__init__(f"{what} is unavailable: {cause}")


def next_sort_option(current: SortOption) -> SortOption:
    """Cycle market cap -> price -> 24h change -> market cap."""
    index = SORT_OPTIONS.index(current)
    return SORT_OPTIONS[(index + 1) % len(SORT_OPTIONS)]


def sort_cryptos(
    coins: Iterable[Cryptocurrency], sort_by: SortOption = DEFAULT_SORT
) -> list[Cryptocurrency]:
    """Sort descending by the chosen field. Coins missing the field go last."""

    def field(coin: Cryptocurrency) -> float | None:
        match sort_by:
            case "price":
                return coin.current_price
            case "change_24h":
                return coin.price_change_percentage_24h
            case _:
                return coin.market_cap

    coins = list(coins)
    present = [coin for coin in coins if field(coin) is not None]
    missing = [coin for coin in coins if field(coin) is None]
    return sorted(present, key=field, reverse=True) + missing


def _money(value: float | None) -> str:
    return NOT_AVAILABLE if value is None else format_currency(value)


def _percent(value: float | None) -> str:
    return NOT_AVAILABLE if value is None else format_percentage(value)


def _count(value: float | None) -> str:
    return NOT_AVAILABLE if value is None else format_number(value)


def _state(result: QueryResult) -> QueryState:
    return QueryState(
        is_loading=result.is_loading,
        is_error=result.is_error,
        is_stale=result.is_stale,
        error=str(result.error) if result.error else None,
    )


class Dashboard:
    """
    Server-side state behind the dashboard views.

    Owns the market list poller: while started, the list that the dashboard
    shows (watchlist coins, or the top coins when the watchlist is empty) is
    refetched on its interval, and watchlist changes move the poller to the
    new cache key.
    """

    def __init__(
        self,
        store: WatchlistStore,
        queries: CryptoQueries,
        public_base_url: str | None = None,
        search_limit: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.queries = queries
        self.public_base_url = public_base_url or api_settings.public_base_url
        self.search_limit = search_limit or api_settings.search_result_limit
        self._sleep = sleep
        self._poller: QueryPoller | None = None
        self._unsubscribe: Callable[[], None] | None = None

    async def start(self) -> None:
        """Load the watchlist and start polling the market list."""
        await self.store.initialize()
        self._poller = self.queries.crypto_list_poller(
            self.source_ids(), sleep=self._sleep
        )
        self._poller.start()
        self._unsubscribe = self.store.subscribe(self._on_watchlist_change)
        logger.info("Dashboard started")

    async def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._poller:
            await self._poller.stop()
            self._poller = None
        await self.queries.cache.close()
        await self.store.close()
        logger.info("Dashboard stopped")

    @property
    def poller(self) -> QueryPoller | None:
        return self._poller

    def source_ids(self) -> list[str] | None:
        """Ids the dashboard lists, or None for the top coins."""
        return self.store.get() or None

    def _on_watchlist_change(self, ids: list[str]) -> None:
        if self._poller:
            self.queries.retarget_list_poller(self._poller, ids or None)

    def _card(self, coin: Cryptocurrency) -> CoinCard:
        return CoinCard(
            coin=coin,
            in_watchlist=self.store.contains(coin.id),
            price=_money(coin.current_price),
            change_24h=_percent(coin.price_change_percentage_24h),
            market_cap=_money(coin.market_cap),
            volume_24h=_money(coin.total_volume),
            sparkline=build_sparkline_series(coin),
        )

    async def overview(self, sort_by: SortOption = DEFAULT_SORT) -> DashboardResponse:
        ids = self.source_ids()
        result = await self.queries.crypto_list(ids)
        if result.data is None and result.is_error:
            raise UpstreamUnavailableError("Market list", result.error)

        coins = sort_cryptos(result.data or [], sort_by)
        return DashboardResponse(
            **_state(result).model_dump(),
            title=WATCHLIST_TITLE if ids else POPULAR_TITLE,
            sort_by=sort_by,
            next_sort=next_sort_option(sort_by),
            coins=[self._card(coin) for coin in coins],
        )

    async def search(self, query: str) -> SearchResponse:
        query = query.strip()
        result = await self.queries.crypto_search(query)
        if result.data is None and result.is_error:
            raise UpstreamUnavailableError("Search", result.error)

        hits = [
            SearchHit(result=hit, in_watchlist=self.store.contains(hit.id))
            for hit in (result.data or [])[: self.search_limit]
        ]
        return SearchResponse(**_state(result).model_dump(), query=query, results=hits)

    async def details(
        self, coin_id: str, timeframe: str = DEFAULT_TIMEFRAME
    ) -> DetailsResponse:
        days = days_for_timeframe(timeframe)
        details_result, chart_result = await asyncio.gather(
            self.queries.crypto_details(coin_id),
            self.queries.chart_data(coin_id, days),
        )
        coin = details_result.data
        if coin is None:
            raise UpstreamUnavailableError(f"Coin '{coin_id}'", details_result.error)

        chart = chart_result.data
        links = coin.links
        return DetailsResponse(
            **_state(details_result).model_dump(),
            coin=coin,
            in_watchlist=self.store.contains(coin.id),
            timeframe=timeframe.upper(),
            stats={
                "price": _money(coin.current_price),
                "change_24h": _percent(coin.price_change_percentage_24h),
                "market_cap": _money(coin.market_cap),
                "volume_24h": _money(coin.total_volume),
                "high_24h": _money(coin.high_24h),
                "low_24h": _money(coin.low_24h),
                "circulating_supply": _count(coin.circulating_supply),
                "max_supply": _count(coin.max_supply),
                "ath": _money(coin.ath),
                "atl": _money(coin.atl),
            },
            description_html=sanitize_description(
                (coin.description or {}).get("en")
            ),
            links=CoinLinksResponse(
                website=links.website if links else None,
                reddit=links.subreddit_url if links else None,
            ),
            price_chart=(
                build_price_series(chart, days, coin.price_change_percentage_24h)
                if chart
                else None
            ),
            volume_chart=build_volume_series(chart, days) if chart else None,
            chart_error=chart_result.is_error,
        )

    async def manager(self) -> ManagerResponse:
        """Watchlist manager: the saved ids and their market summaries."""
        ids = self.store.get()
        if not ids:
            return ManagerResponse(ids=[], count=0, coins=[])

        result = await self.queries.crypto_list(ids)
        return ManagerResponse(
            **_state(result).model_dump(),
            ids=ids,
            count=len(ids),
            coins=[self._card(coin) for coin in result.data or []],
        )

    async def import_file(self, content: str | bytes) -> list[str]:
        """Validate an uploaded file and merge it into the watchlist."""
        imported = parse_import(content)
        merged = await self.store.merge(imported)
        logger.info(f"Imported {len(imported)} ids, watchlist now has {len(merged)}")
        return merged

    def export(self) -> str:
        return export_watchlist(self.store.get())

    def share(self) -> ShareResponse:
        ids = self.store.get()
        return ShareResponse(
            url=build_share_url(self.public_base_url, ids),
            token=encode_watchlist(ids),
        )

    async def seed_from_url(self, url: str) -> str | None:
        """
        Consume a share token carried by `url`.

        Returns:
            The URL without the share parameter when one was present,
            otherwise None. The watchlist is replaced only when the token
            decodes to a non-empty list.
        """
        ids, cleaned = consume_share_token(url)
        if cleaned is None:
            return None
        if ids:
            await self.store.replace(ids)
            if self.store.last_write_error is None:
                logger.info(f"Seeded watchlist with {len(ids)} shared coins")
        return cleaned

    async def remove_many(self, coin_ids: Sequence[str]) -> None:
        await self.store.remove_many(coin_ids)
