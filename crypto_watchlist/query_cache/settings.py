"""
Query cache settings using Pydantic for environment-based configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueryCacheSettings(BaseSettings):
    """Staleness windows and polling intervals, in seconds."""

    list_stale_time: float = Field(
        default=10, description="Market list is considered fresh for this long"
    )
    list_refetch_interval: float = Field(
        default=30, gt=0, description="Market list background refetch interval"
    )
    search_stale_time: float = Field(default=60, description="Search result lifetime")
    details_stale_time: float = Field(default=30, description="Coin details lifetime")
    chart_stale_time: float = Field(default=60, description="Chart series lifetime")
    gc_time: float = Field(
        default=300, gt=0, description="Unused entries are dropped after this long"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Create a global instance
query_cache_settings = QueryCacheSettings()
