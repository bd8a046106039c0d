"""
Watchlist store: the single source of truth for the saved coin ids.
"""

import asyncio
import json
import logging
from collections.abc import Callable, Iterable

from .settings import watchlist_settings
from .storage import WatchlistStorage

Listener = Callable[[list[str]], None]

logger = logging.getLogger(__name__)


def dedupe(ids: Iterable[str]) -> list[str]:
    """Drop repeated ids, keeping the first occurrence of each."""
    return list(dict.fromkeys(ids))


def parse_stored_watchlist(raw: str | None) -> list[str]:
    """Decode a stored slot. Anything that is not a JSON list of strings is empty."""
    if raw is None:
        return []

    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Stored watchlist is not valid JSON, starting empty")
        return []

    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        logger.warning("Stored watchlist is not a list of ids, starting empty")
        return []

    return dedupe(value)


class WatchlistStore:
    """
    Ordered, duplicate-free list of coin ids backed by a durable slot.

    Reads are served from an in-memory mirror. Every effective mutation
    writes the whole list to storage, then updates the mirror and notifies
    subscribers with the new list.
    """

    def __init__(
        self, storage: WatchlistStorage, namespace: str | None = None
    ) -> None:
        self.storage = storage
        self.namespace = namespace or watchlist_settings.watchlist_namespace
        self._ids: list[str] = []
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()
        self.last_write_error: Exception | None = None

    async def initialize(self) -> None:
        """Load the persisted watchlist. Missing or corrupt data loads as empty."""
        await self.storage.initialize()
        self._ids = parse_stored_watchlist(await self.storage.read(self.namespace))
        logger.info(f"Loaded watchlist with {len(self._ids)} coins")

    async def close(self) -> None:
        await self.storage.close()

    def get(self) -> list[str]:
        return list(self._ids)

    def contains(self, coin_id: str) -> bool:
        return coin_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def add(self, coin_id: str) -> None:
        """Append an id. Adding an id that is already present writes nothing."""
        async with self._lock:
            if coin_id in self._ids:
                self.last_write_error = None
                return
            await self._commit([*self._ids, coin_id])

    async def remove(self, coin_id: str) -> None:
        async with self._lock:
            await self._commit([i for i in self._ids if i != coin_id])

    async def remove_many(self, coin_ids: Iterable[str]) -> None:
        """Remove several ids with a single write."""
        drop = set(coin_ids)
        async with self._lock:
            await self._commit([i for i in self._ids if i not in drop])

    async def toggle(self, coin_id: str) -> bool:
        """Add the id if absent, remove it otherwise. Returns the new membership."""
        if coin_id in self._ids:
            await self.remove(coin_id)
        else:
            await self.add(coin_id)
        return coin_id in self._ids

    async def replace(self, coin_ids: Iterable[str]) -> None:
        async with self._lock:
            await self._commit(dedupe(coin_ids))

    async def merge(self, imported: Iterable[str]) -> list[str]:
        """Append imported ids after the current ones, skipping duplicates."""
        async with self._lock:
            await self._commit(dedupe([*self._ids, *imported]))
        return self.get()

    async def clear(self) -> None:
        await self.replace([])

    async def _commit(self, ids: list[str]) -> None:
        """
        Persist `ids`, then publish them.

        The mirror only changes once the write has succeeded. A failed write
        leaves the previous list in place, records the error in
        `last_write_error` and notifies nobody.
        """
        try:
            await self.storage.write(self.namespace, json.dumps(ids))
        except Exception as e:
            logger.error(f"Failed to save watchlist, keeping previous list: {e}")
            self.last_write_error = e
            return

        self.last_write_error = None
        self._ids = ids
        logger.debug(f"Watchlist now holds {len(ids)} coins")

        for listener in list(self._listeners):
            try:
                listener(list(ids))
            except Exception as e:
                logger.error(f"Watchlist listener failed: {e}", exc_info=e)
