"""
Market data settings using Pydantic for environment-based configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketDataSettings(BaseSettings):
    """Market data provider configuration using Pydantic settings."""

    coingecko_api_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="CoinGecko REST API base URL",
    )

    request_timeout: float = Field(
        default=10, description="Total timeout in seconds for a provider request"
    )

    top_n: int = Field(
        default=20, gt=0, description="Number of coins listed when no ids are given"
    )

    vs_currency: str = Field(default="usd", description="Quote currency")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Create a global instance
market_data_settings = MarketDataSettings()
