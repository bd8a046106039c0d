"""
Market data models for the crypto watchlist application.
"""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderModel(BaseModel):
    """Base model for payloads coming from the market-data provider."""

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
    )


class ROI(ProviderModel):
    """Return on investment since the initial offering."""

    times: float
    currency: str
    percentage: float


class Sparkline(ProviderModel):
    """Seven day price sparkline."""

    price: list[float] = Field(default_factory=list)


class Cryptocurrency(ProviderModel):
    """Model representing a cryptocurrency market summary."""

    id: Annotated[str, Field(min_length=1, description="Provider identifier")]
    symbol: Annotated[str, Field(description="Ticker symbol")]
    name: Annotated[str, Field(description="Display name")]
    image: str | None = None
    current_price: float | None = None
    market_cap: float | None = None
    market_cap_rank: int | None = None
    fully_diluted_valuation: float | None = None
    total_volume: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    price_change_24h: float | None = None
    price_change_percentage_24h: float | None = None
    price_change_percentage_7d_in_currency: float | None = None
    market_cap_change_24h: float | None = None
    market_cap_change_percentage_24h: float | None = None
    circulating_supply: float | None = None
    total_supply: float | None = None
    max_supply: float | None = None
    ath: float | None = None
    ath_change_percentage: float | None = None
    ath_date: str | None = None
    atl: float | None = None
    atl_change_percentage: float | None = None
    atl_date: str | None = None
    roi: ROI | None = None
    last_updated: str | None = None
    sparkline_in_7d: Sparkline | None = None


class RepositoryLinks(ProviderModel):
    """Source repositories of a project."""

    github: list[str] = Field(default_factory=list)
    bitbucket: list[str] = Field(default_factory=list)


class CoinLinks(ProviderModel):
    """Homepage, social and repository links of a project."""

    homepage: list[str] = Field(default_factory=list)
    blockchain_site: list[str] = Field(default_factory=list)
    official_forum_url: list[str] = Field(default_factory=list)
    chat_url: list[str] = Field(default_factory=list)
    announcement_url: list[str] = Field(default_factory=list)
    twitter_screen_name: str | None = None
    facebook_username: str | None = None
    bitcointalk_thread_identifier: int | None = None
    telegram_channel_identifier: str | None = None
    subreddit_url: str | None = None
    repos_url: RepositoryLinks | None = None

    @field_validator(
        "homepage",
        "blockchain_site",
        "official_forum_url",
        "chat_url",
        "announcement_url",
        mode="before",
    )
    @classmethod
    def drop_empty_urls(cls, value: list[str] | None) -> list[str]:
        """The provider pads URL lists with empty strings."""
        return [url for url in value or [] if url]

    @property
    def website(self) -> str | None:
        return self.homepage[0] if self.homepage else None


class CryptoDetails(Cryptocurrency):
    """Cryptocurrency summary plus description and project links."""

    description: dict[str, str] | None = None
    links: CoinLinks | None = None


class ChartData(ProviderModel):
    """Parallel [timestamp_ms, value] series for a coin."""

    prices: list[tuple[float, float]] = Field(default_factory=list)
    market_caps: list[tuple[float, float]] = Field(default_factory=list)
    total_volumes: list[tuple[float, float]] = Field(default_factory=list)

    @field_validator("prices", "market_caps", "total_volumes")
    @classmethod
    def timestamps_non_decreasing(
        cls, value: list[tuple[float, float]]
    ) -> list[tuple[float, float]]:
        for previous, current in zip(value, value[1:]):
            if current[0] < previous[0]:
                raise ValueError("Series timestamps must be non-decreasing")
        return value


class SearchResult(ProviderModel):
    """Lightweight search hit used to pick a coin."""

    id: str
    name: str
    symbol: str
    market_cap_rank: int | None = None
    thumb: str | None = None
    large: str | None = None
