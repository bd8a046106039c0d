"""
Durable slots for the serialized watchlist.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime

import aiosqlite

from .settings import watchlist_settings

logger = logging.getLogger(__name__)


class WatchlistStorage(ABC):
    """One text value per namespace, read at startup and written on change."""

    async def initialize(self) -> None:
        """Prepare the backing store."""

    @abstractmethod
    async def read(self, namespace: str) -> str | None:
        """Return the stored text, or None when the slot is empty."""

    @abstractmethod
    async def write(self, namespace: str, value: str) -> None:
        """Replace the stored text."""

    async def close(self) -> None:
        """Release the backing store."""


class InMemoryWatchlistStorage(WatchlistStorage):
    """Process-local storage, used by tests and throwaway sessions."""

    def __init__(self, slots: dict[str, str] | None = None) -> None:
        self.slots: dict[str, str] = dict(slots or {})
        self.writes = 0

    async def read(self, namespace: str) -> str | None:
        return self.slots.get(namespace)

    async def write(self, namespace: str, value: str) -> None:
        self.slots[namespace] = value
        self.writes += 1


class SqliteWatchlistStorage(WatchlistStorage):
    """Async SQLite-based storage for watchlist slots."""

    def __init__(self, database_path: str | None = None):
        """Initialize the watchlist storage."""
        self.database_path = database_path or watchlist_settings.database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Initialize the database connection and create tables."""
        await self._get_connection()
        await self._create_tables()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create async database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.database_path)
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def _create_tables(self) -> None:
        """Create the slots table if it doesn't exist."""
        connection = await self._get_connection()

        await connection.execute("""
            CREATE TABLE IF NOT EXISTS slots (
                namespace TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await connection.commit()

    async def read(self, namespace: str) -> str | None:
        connection = await self._get_connection()

        async with connection.execute(
            "SELECT value FROM slots WHERE namespace = ?", (namespace,)
        ) as cursor:
            row = await cursor.fetchone()

        return row["value"] if row else None

    async def write(self, namespace: str, value: str) -> None:
        connection = await self._get_connection()

        await connection.execute(
            """
            INSERT INTO slots (namespace, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(namespace) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """,
            (namespace, value, datetime.now(UTC).isoformat()),
        )

        await connection.commit()
        logger.debug(f"Saved watchlist slot '{namespace}'")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
