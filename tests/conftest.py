"""
Test configuration for the crypto watchlist tests.
"""

import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to path before importing our modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Import our modules after path setup
from crypto_watchlist.api.dashboard import Dashboard  # noqa: E402
from crypto_watchlist.market_data.client import MarketDataError  # noqa: E402
from crypto_watchlist.market_data.models import (  # noqa: E402
    ChartData,
    CryptoDetails,
    Cryptocurrency,
    SearchResult,
)
from crypto_watchlist.query_cache.cache import QueryCache  # noqa: E402
from crypto_watchlist.query_cache.queries import CryptoQueries  # noqa: E402
from crypto_watchlist.query_cache.settings import QueryCacheSettings  # noqa: E402
from crypto_watchlist.watchlist.storage import (  # noqa: E402
    InMemoryWatchlistStorage,
    SqliteWatchlistStorage,
)
from crypto_watchlist.watchlist.store import WatchlistStore  # noqa: E402


def make_market_item(coin_id: str, price: float, market_cap: float, change: float):
    """Provider /coins/markets item."""
    return {
        "id": coin_id,
        "symbol": coin_id[:3],
        "name": coin_id.title(),
        "image": f"https://example.com/{coin_id}.png",
        "current_price": price,
        "market_cap": market_cap,
        "market_cap_rank": 1,
        "total_volume": market_cap / 50,
        "price_change_percentage_24h": change,
        "circulating_supply": 19_000_000,
        "total_supply": None,
        "max_supply": None,
        "last_updated": "2025-01-15T12:00:00.000Z",
        "sparkline_in_7d": {"price": [price * 0.9, price, price * 1.1]},
    }


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMarketDataClient:
    """Stands in for MarketDataClient and records every call."""

    def __init__(self, coins: list[Cryptocurrency] | None = None) -> None:
        self.coins = coins or []
        self.calls: list[tuple] = []
        self.fail = False
        self.gate: asyncio.Event | None = None

    async def _call(self, *call):
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise MarketDataError(call[0], "provider down", status=503)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def list_markets(self, ids=None):
        await self._call("listMarkets", tuple(ids) if ids else None)
        if ids:
            return [coin for coin in self.coins if coin.id in ids]
        return list(self.coins)

    async def search(self, query):
        await self._call("search", query)
        return [
            SearchResult(id=coin.id, name=coin.name, symbol=coin.symbol)
            for coin in self.coins
            if query.lower() in coin.id
        ]

    async def get_details(self, coin_id):
        await self._call("getDetails", coin_id)
        for coin in self.coins:
            if coin.id == coin_id:
                return CryptoDetails(
                    **coin.model_dump(),
                    description={"en": "<p>Digital <script>x()</script>gold</p>"},
                    links={
                        "homepage": ["https://bitcoin.org", ""],
                        "subreddit_url": "https://reddit.com/r/Bitcoin",
                    },
                )
        raise MarketDataError("getDetails", "Not Found", status=404)

    async def get_chart_series(self, coin_id, days):
        await self._call("getChartSeries", coin_id, days)
        return ChartData(
            prices=[(1_700_000_000_000, 100.0), (1_700_003_600_000, 101.0)],
            market_caps=[(1_700_000_000_000, 1e9)],
            total_volumes=[(1_700_000_000_000, 5e8), (1_700_003_600_000, 6e8)],
        )


async def drain(rounds: int = 20) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def idle_sleep(_: float) -> None:
    """Sleep that never returns, so pollers stay parked."""
    await asyncio.Event().wait()


class FailingWatchlistStorage(InMemoryWatchlistStorage):
    """In-memory storage whose writes can be made to fail."""

    def __init__(self, slots: dict[str, str] | None = None) -> None:
        super().__init__(slots)
        self.failing = False

    async def write(self, namespace: str, value: str) -> None:
        if self.failing:
            raise OSError("disk full")
        await super().write(namespace, value)


def make_dashboard(
    client, storage: InMemoryWatchlistStorage | None = None, **kwargs
) -> Dashboard:
    """Dashboard over in-memory storage and the given fake client."""
    kwargs.setdefault("public_base_url", "https://watch.example")
    kwargs.setdefault("sleep", idle_sleep)
    return Dashboard(
        store=WatchlistStore(storage or InMemoryWatchlistStorage()),
        queries=CryptoQueries(client, QueryCache(), QueryCacheSettings()),
        **kwargs,
    )


@pytest.fixture
def sample_coins():
    """Provide sample coins for testing."""
    return [
        Cryptocurrency.model_validate(make_market_item("bitcoin", 45000.0, 9e11, 2.5)),
        Cryptocurrency.model_validate(make_market_item("ethereum", 3000.0, 3.6e11, -1.2)),
        Cryptocurrency.model_validate(make_market_item("cardano", 0.5, 1.8e10, 7.8)),
    ]


@pytest.fixture
def fake_client(sample_coins):
    return FakeMarketDataClient(sample_coins)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def memory_store():
    """Initialized watchlist store over in-memory storage."""
    store = WatchlistStore(InMemoryWatchlistStorage())
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def temp_storage():
    """Create a temporary SQLite storage instance for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        storage = SqliteWatchlistStorage(tmp.name)
        await storage.initialize()
        try:
            yield storage
        finally:
            await storage.close()
            try:
                os.unlink(tmp.name)
            except PermissionError:
                # On Windows, sometimes the file is still locked
                pass
