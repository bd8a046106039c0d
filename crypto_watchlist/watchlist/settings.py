"""
Watchlist settings using Pydantic for environment-based configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WatchlistSettings(BaseSettings):
    """Watchlist persistence configuration."""

    database_path: str = Field(
        default="./watchlist.db", description="Path to SQLite database file"
    )

    watchlist_namespace: str = Field(
        default="crypto-watchlist", description="Storage slot holding the watchlist"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Create a global instance
watchlist_settings = WatchlistSettings()
