"""
Background polling for a single cache key.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Self

from .cache import Fetcher, QueryCache, QueryKey, QueryPolicy

logger = logging.getLogger(__name__)


class QueryPoller:
    """
    Refetches one query on a fixed interval while started.

    The owner decides the lifetime: `start()` and `stop()`, or use the poller
    as an async context manager. Staleness is ignored, every tick fetches.
    """

    def __init__(
        self,
        cache: QueryCache,
        key: QueryKey,
        fetcher: Fetcher,
        policy: QueryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if policy.refetch_interval is None or policy.refetch_interval <= 0:
            raise ValueError("Polling requires a positive refetch interval")

        self.cache = cache
        self.key = key
        self.fetcher = fetcher
        self.policy = policy
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling. Calling it on a running poller does nothing."""
        if self.running:
            return
        self._task = asyncio.create_task(self._poll())
        logger.info(
            f"Polling {self.key!r} every {self.policy.refetch_interval} seconds"
        )

    async def stop(self) -> None:
        """Stop polling and wait for the loop to exit."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Stopped polling {self.key!r}")

    def retarget(self, key: QueryKey, fetcher: Fetcher) -> None:
        """Point the poller at another key, effective from the next tick."""
        if key == self.key:
            return
        logger.debug(f"Poller moved from {self.key!r} to {key!r}")
        self.key = key
        self.fetcher = fetcher

    async def tick(self) -> None:
        """Run one refetch of the current key."""
        self.ticks += 1
        await self.cache.refetch(self.key, self.fetcher, self.policy)

    async def _poll(self) -> None:
        try:
            while True:
                await self._sleep(self.policy.refetch_interval)
                await self.tick()
        except asyncio.CancelledError:
            logger.debug(f"Poller for {self.key!r} cancelled")
            raise

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()
