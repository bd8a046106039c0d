"""
API-specific data models for the crypto watchlist application.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..market_data.models import Cryptocurrency, SearchResult
from ..shared.charts import ChartSeries, SparklineSeries

SortOption = Literal["market_cap", "price", "change_24h"]


class CoinCard(BaseModel):
    """Summary card for one coin."""

    coin: Cryptocurrency
    in_watchlist: bool
    price: Annotated[str, Field(description="Formatted current price")]
    change_24h: Annotated[str, Field(description="Formatted 24h change")]
    market_cap: Annotated[str, Field(description="Formatted market cap")]
    volume_24h: Annotated[str, Field(description="Formatted 24h volume")]
    sparkline: SparklineSeries | None = None


class QueryState(BaseModel):
    """Loading and error flags of the cached query behind a response."""

    is_loading: bool = False
    is_error: bool = False
    is_stale: bool = False
    error: str | None = None


class DashboardResponse(QueryState):
    """Cards shown on the dashboard."""

    title: str
    sort_by: SortOption
    next_sort: SortOption
    coins: list[CoinCard]


class SearchHit(BaseModel):
    result: SearchResult
    in_watchlist: bool


class SearchResponse(QueryState):
    query: str
    results: list[SearchHit]


class CoinLinksResponse(BaseModel):
    website: str | None = None
    reddit: str | None = None


class DetailsResponse(QueryState):
    """Coin detail panel: stats, charts, description and links."""

    coin: Cryptocurrency
    in_watchlist: bool
    timeframe: str
    stats: dict[str, str]
    description_html: str
    links: CoinLinksResponse
    price_chart: ChartSeries | None = None
    volume_chart: ChartSeries | None = None
    chart_error: bool = False


class WatchlistResponse(BaseModel):
    ids: list[str]
    count: int


class ManagerResponse(QueryState):
    """Watchlist manager panel."""

    ids: list[str]
    count: int
    coins: list[CoinCard]


class ToggleResponse(WatchlistResponse):
    in_watchlist: bool


class RemoveManyRequest(BaseModel):
    ids: list[str]


class ShareResponse(BaseModel):
    url: str
    token: str


class ErrorResponse(BaseModel):
    """Model for error responses."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    error: Annotated[str, Field(description="Error code")]
    message: Annotated[str, Field(description="Human-readable error message")]
