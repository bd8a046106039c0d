"""
Market data client that fetches coins from the CoinGecko REST API.
"""

import asyncio
import logging
import math
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Final

import aiohttp
from pydantic import ValidationError

from .models import ChartData, CryptoDetails, Cryptocurrency, SearchResult
from .settings import market_data_settings

OPERATION_LIST_MARKETS: Final[str] = "listMarkets"
OPERATION_SEARCH: Final[str] = "search"
OPERATION_GET_DETAILS: Final[str] = "getDetails"
OPERATION_GET_CHART_SERIES: Final[str] = "getChartSeries"

DETAILS_QUERY: Final[dict[str, str]] = {
    "localization": "false",
    "tickers": "false",
    "market_data": "true",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "true",
}

# market_data fields keyed by quote currency
_PER_CURRENCY_FIELDS: Final[tuple[str, ...]] = (
    "current_price",
    "market_cap",
    "fully_diluted_valuation",
    "total_volume",
    "high_24h",
    "low_24h",
    "ath",
    "ath_change_percentage",
    "ath_date",
    "atl",
    "atl_change_percentage",
    "atl_date",
)
_PLAIN_FIELDS: Final[tuple[str, ...]] = (
    "price_change_24h",
    "price_change_percentage_24h",
    "market_cap_change_24h",
    "market_cap_change_percentage_24h",
    "circulating_supply",
    "total_supply",
    "max_supply",
)

logger = logging.getLogger(__name__)


def format_days(days: float) -> str:
    """Render a chart range in plain decimal notation, e.g. 1000000 or 0.00001."""
    text = f"{Decimal(str(days)):f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class MarketDataError(Exception):
    """Raised when a provider request fails or returns an unusable payload."""

    def __init__(self, operation: str, message: str, status: int | None = None):
        self.operation = operation
        self.message = message
        self.status = status
        super().__init__(f"{operation} failed: {message}")


class MarketDataClient:
    """Thin async client over the provider's four read endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float | None = None,
        top_n: int | None = None,
        vs_currency: str | None = None,
    ) -> None:
        """Initialize the client. A shared session is optional."""
        self.base_url = (base_url or market_data_settings.coingecko_api_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(
            total=timeout or market_data_settings.request_timeout
        )
        self.top_n = top_n or market_data_settings.top_n
        self.vs_currency = vs_currency or market_data_settings.vs_currency
        self._session = session

    @asynccontextmanager
    async def _session_scope(self) -> AsyncGenerator[aiohttp.ClientSession, None]:
        """Yield the shared session, or a short-lived one per request."""
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    async def _get_json(
        self, operation: str, path: str, params: dict[str, str] | None = None
    ) -> Any:
        """Issue a GET and decode the JSON body, mapping failures to MarketDataError."""
        url = f"{self.base_url}{path}"

        try:
            async with (
                self._session_scope() as session,
                session.get(url, params=params, timeout=self.timeout) as response,
            ):
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientResponseError as e:
            logger.error(f"{operation} request to {path} failed with {e.status}")
            raise MarketDataError(operation, e.message or str(e), e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{operation} request to {path} failed: {e!r}")
            raise MarketDataError(operation, str(e) or type(e).__name__) from e
        except ValueError as e:
            logger.error(f"{operation} returned malformed JSON: {e}")
            raise MarketDataError(operation, "Malformed JSON payload") from e

    async def list_markets(
        self, ids: Sequence[str] | None = None
    ) -> list[Cryptocurrency]:
        """
        List coin market summaries.

        Args:
            ids: Coins to fetch. When omitted, the top N coins by market
                 capitalization are returned.

        Returns:
            Coins in the order the provider returned them. Duplicate ids are
            dropped, keeping the first occurrence.
        """
        params = {
            "vs_currency": self.vs_currency,
            "order": "market_cap_desc",
            "per_page": str(len(ids) if ids else self.top_n),
            "page": "1",
            "sparkline": "true",
            "price_change_percentage": "24h,7d",
        }
        if ids:
            params["ids"] = ",".join(ids)

        data = await self._get_json(OPERATION_LIST_MARKETS, "/coins/markets", params)
        if not isinstance(data, list):
            raise MarketDataError(OPERATION_LIST_MARKETS, "Expected a list of coins")

        try:
            coins = [Cryptocurrency.model_validate(item) for item in data]
        except ValidationError as e:
            raise MarketDataError(OPERATION_LIST_MARKETS, str(e)) from e

        unique: dict[str, Cryptocurrency] = {}
        for coin in coins:
            if coin.id in unique:
                logger.warning(f"Dropping duplicate coin '{coin.id}' from market list")
                continue
            unique[coin.id] = coin

        logger.debug(f"Fetched {len(unique)} market summaries")
        return list(unique.values())

    async def search(self, query: str) -> list[SearchResult]:
        """Search coins by name or symbol. A blank query makes no request."""
        if not query.strip():
            return []

        data = await self._get_json(OPERATION_SEARCH, "/search", {"query": query})
        if not isinstance(data, dict):
            raise MarketDataError(OPERATION_SEARCH, "Expected a search object")

        try:
            return [SearchResult.model_validate(item) for item in data.get("coins") or []]
        except ValidationError as e:
            raise MarketDataError(OPERATION_SEARCH, str(e)) from e

    async def get_details(self, coin_id: str) -> CryptoDetails:
        """Fetch a coin and flatten its nested market data."""
        data = await self._get_json(
            OPERATION_GET_DETAILS, f"/coins/{coin_id}", DETAILS_QUERY
        )
        if not isinstance(data, dict):
            raise MarketDataError(OPERATION_GET_DETAILS, "Expected a coin object")

        try:
            return CryptoDetails.model_validate(self._reshape_details(data))
        except ValidationError as e:
            raise MarketDataError(OPERATION_GET_DETAILS, str(e)) from e

    def _reshape_details(self, data: dict[str, Any]) -> dict[str, Any]:
        """Map the provider's nested coin document onto the flat details shape."""
        market = data.get("market_data") or {}

        def in_currency(field: str) -> Any:
            value = market.get(field)
            if isinstance(value, dict):
                return value.get(self.vs_currency)
            return None

        image = data.get("image")
        flat: dict[str, Any] = {
            "id": data.get("id"),
            "symbol": data.get("symbol"),
            "name": data.get("name"),
            "image": image.get("large") if isinstance(image, dict) else image,
            "market_cap_rank": data.get("market_cap_rank"),
            "last_updated": data.get("last_updated"),
            "price_change_percentage_7d_in_currency": in_currency(
                "price_change_percentage_7d_in_currency"
            ),
            "sparkline_in_7d": market.get("sparkline_7d"),
            "roi": market.get("roi"),
            "description": data.get("description"),
            "links": data.get("links"),
        }
        flat.update({field: in_currency(field) for field in _PER_CURRENCY_FIELDS})
        flat.update({field: market.get(field) for field in _PLAIN_FIELDS})
        return flat

    async def get_chart_series(self, coin_id: str, days: float) -> ChartData:
        """
        Fetch price, market cap and volume series for the last `days` days.

        The provider picks the sampling granularity from the range; fractional
        ranges such as 0.04 (roughly one hour) are accepted.
        """
        if not math.isfinite(days) or days <= 0:
            raise ValueError(f"Chart range must be positive, got {days}")

        data = await self._get_json(
            OPERATION_GET_CHART_SERIES,
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": self.vs_currency, "days": format_days(days)},
        )
        if not isinstance(data, dict):
            raise MarketDataError(OPERATION_GET_CHART_SERIES, "Expected chart object")

        try:
            return ChartData.model_validate(data)
        except ValidationError as e:
            raise MarketDataError(OPERATION_GET_CHART_SERIES, str(e)) from e
