"""
Periodic removal of expired response cache entries.
"""

import asyncio
from typing import Optional

from shared.errors import CacheConfigurationError
from shared.logging import get_logger
from .response_cache import ResponseCache


class CacheSweeper:
    """Background task bounding memory for families that stop being read.

    Lazy expiry in ``ResponseCache.get`` is what keeps reads correct; the
    sweeper only reclaims entries nobody asks for anymore.
    """

    def __init__(self, cache: ResponseCache, interval_seconds: float = 60.0):
        if interval_seconds <= 0:
            raise CacheConfigurationError(
                "Sweep interval must be > 0", {"interval_seconds": interval_seconds}
            )
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.logger = get_logger("storefront.cache_sweeper")
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="response-cache-sweeper")
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Cache sweeper stopped")

    def sweep_once(self) -> int:
        removed = self.cache.sweep()
        if removed:
            self.logger.info("Swept expired cache entries", removed=removed)
        else:
            self.logger.debug("Cache sweep found nothing to remove")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception as exc:
                self.logger.error("Cache sweep failed", error=str(exc), exc_info=True)
