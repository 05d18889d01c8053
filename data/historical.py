"""
Thetaline — Historical Data Fetcher
Caching layer over any MarketDataProvider: serves repeated range requests
from a TTL cache and falls back to a secondary provider on fetch errors.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from core.cache import TTLCache
from core.exceptions import DataError
from core.models import Bar
from data.providers import MarketDataProvider

logger = logging.getLogger("thetaline.data.historical")

VIX_KEY = "__VIX__"


class CachedMarketDataProvider(MarketDataProvider):
    """
    Market data with caching.

    - Primary provider answers misses
    - Optional fallback is tried when the primary raises a DataError
    - Results cached per (symbol, start, end) for `ttl` seconds
    """

    def __init__(
        self,
        primary: MarketDataProvider,
        cache: Optional[TTLCache] = None,
        ttl: Optional[float] = None,
        fallback: Optional[MarketDataProvider] = None,
    ):
        super().__init__(f"cached:{primary.name}")
        self._primary = primary
        self._fallback = fallback
        self._cache = cache if cache is not None else TTLCache()
        self._ttl = ttl

    async def get_daily_bars(self, symbol: str, start: date, end: date) -> list[Bar]:
        key = (symbol, start, end)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit: %s [%s - %s]", symbol, start, end)
            return list(cached)

        try:
            bars = await self._primary.get_daily_bars(symbol, start, end)
        except DataError as e:
            if self._fallback is None:
                raise
            logger.warning("Primary provider (%s) failed for %s: %s", self._primary.name, symbol, e)
            logger.info("Trying fallback provider (%s)...", self._fallback.name)
            bars = await self._fallback.get_daily_bars(symbol, start, end)

        self._cache.set(key, tuple(bars), self._ttl)
        return bars

    async def get_volatility_index_history(self, start: date, end: date) -> list[Bar]:
        key = (VIX_KEY, start, end)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        try:
            bars = await self._primary.get_volatility_index_history(start, end)
        except DataError as e:
            if self._fallback is None:
                raise
            logger.warning("Primary provider (%s) failed for VIX: %s", self._primary.name, e)
            bars = await self._fallback.get_volatility_index_history(start, end)

        self._cache.set(key, tuple(bars), self._ttl)
        return bars

    async def close(self) -> None:
        await self._primary.close()
        if self._fallback is not None:
            await self._fallback.close()
