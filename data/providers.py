"""
Thetaline — Market Data Providers
Unified interface for daily stock bars and the volatility index.
The engine never talks to a vendor API directly, always through this.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Mapping, Optional, Sequence

import httpx

from core.config import ProviderConfig
from core.exceptions import (
    DataFetchError,
    DataIntegrityError,
    DataNotAvailableError,
    MissingConfigError,
)
from core.models import Bar

logger = logging.getLogger("thetaline.data.providers")


class MarketDataProvider(ABC):
    """
    Abstract source of daily bars.

    Bars come back in ascending date order; dates without trading are
    simply absent.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def get_daily_bars(self, symbol: str, start: date, end: date) -> list[Bar]:
        """Daily bars for `symbol` with start <= date <= end."""
        ...

    @abstractmethod
    async def get_volatility_index_history(self, start: date, end: date) -> list[Bar]:
        """Daily volatility index (VIX) bars with start <= date <= end."""
        ...

    async def close(self) -> None:
        """Release network resources, if any."""
        return None


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryDataProvider(MarketDataProvider):
    """Serves pre-loaded bars. Symbols not loaded return no bars."""

    def __init__(
        self,
        bars: Optional[Mapping[str, Sequence[Bar]]] = None,
        vix: Optional[Sequence[Bar]] = None,
        failing: Sequence[str] = (),
    ):
        super().__init__("memory")
        self._bars = {s: sorted(b, key=lambda x: x.timestamp) for s, b in (bars or {}).items()}
        self._vix = sorted(vix or [], key=lambda x: x.timestamp)
        self._failing = set(failing)
        self.calls: list[tuple[str, date, date]] = []

    async def get_daily_bars(self, symbol: str, start: date, end: date) -> list[Bar]:
        self.calls.append((symbol, start, end))
        if symbol in self._failing:
            raise DataFetchError(self.name, f"Simulated failure for {symbol}")
        return [b for b in self._bars.get(symbol, []) if start <= b.date <= end]

    async def get_volatility_index_history(self, start: date, end: date) -> list[Bar]:
        self.calls.append(("VIX", start, end))
        return [b for b in self._vix if start <= b.date <= end]


# ---------------------------------------------------------------------------
# Polygon.io
# ---------------------------------------------------------------------------

class TokenBucket:
    """
    Async token bucket limiting request rate.

    `rate` tokens are added per second up to `capacity`; acquire() waits
    until a token is available.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._rate = rate
        self._capacity = capacity
        self._tokens = capacity
        self._monotonic = monotonic
        self._sleep = sleep
        self._updated = monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._monotonic()
                self._tokens = min(self._capacity, self._tokens + (now - self._updated) * self._rate)
                self._updated = now
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await self._sleep((1 - self._tokens) / self._rate)


class PolygonDataProvider(MarketDataProvider):
    """
    Polygon.io aggregates client.

    - Daily bars from /v2/aggs/ticker/{symbol}/range/1/day/{start}/{end}
    - Volatility index under the configured index ticker (default I:VIX)
    - HTTP 429 retried with exponential backoff (2s * 2^n, capped at 30s)
    - 404 raises DataNotAvailableError, malformed rows DataIntegrityError
    - Any other failure raises DataFetchError
    """

    MAX_BACKOFF_SECONDS = 30.0

    def __init__(
        self,
        config: ProviderConfig,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__("polygon")
        if not config.polygon_api_key:
            raise MissingConfigError("POLYGON_API_KEY is not set")
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout_seconds,
        )
        self._sleep = sleep
        self._limiter = TokenBucket(config.requests_per_second)

    async def get_daily_bars(self, symbol: str, start: date, end: date) -> list[Bar]:
        bars = await self._fetch_aggregates(symbol, start, end)
        logger.info("Fetched %d bars for %s from %s to %s", len(bars), symbol, start, end)
        return bars

    async def get_volatility_index_history(self, start: date, end: date) -> list[Bar]:
        return await self._fetch_aggregates(self._config.volatility_index_ticker, start, end)

    async def close(self) -> None:
        await self._client.aclose()

    async def _fetch_aggregates(self, ticker: str, start: date, end: date) -> list[Bar]:
        url = f"/v2/aggs/ticker/{ticker}/range/1/day/{start.isoformat()}/{end.isoformat()}"
        params = {
            "adjusted": "true",
            "sort": "asc",
            "limit": 50000,
            "apiKey": self._config.polygon_api_key,
        }

        for attempt in range(self._config.max_retries):
            await self._limiter.acquire()
            try:
                resp = await self._client.get(url, params=params)
            except httpx.HTTPError as e:
                raise DataFetchError(self.name, f"{ticker}: request failed: {e}") from e

            if resp.status_code == 429:
                if attempt + 1 >= self._config.max_retries:
                    break
                wait = min(2.0 * 2 ** attempt, self.MAX_BACKOFF_SECONDS)
                logger.warning(
                    "Polygon rate limited on %s (attempt %d/%d), retrying in %.0fs",
                    ticker, attempt + 1, self._config.max_retries, wait,
                )
                await self._sleep(wait)
                continue

            if resp.status_code == 404:
                raise DataNotAvailableError(f"Polygon has no aggregates for {ticker}")

            if resp.status_code != 200:
                raise DataFetchError(self.name, f"{ticker}: HTTP {resp.status_code}: {resp.text[:200]}")

            try:
                payload = resp.json()
            except ValueError as e:
                raise DataFetchError(self.name, f"{ticker}: invalid JSON response") from e

            if payload.get("status") == "ERROR":
                raise DataFetchError(self.name, f"{ticker}: {payload.get('error', 'unknown error')}")

            return [self._to_bar(ticker, row) for row in payload.get("results") or []]

        raise DataFetchError(
            self.name, f"{ticker}: rate limited after {self._config.max_retries} attempts",
        )

    @staticmethod
    def _to_bar(ticker: str, row: dict) -> Bar:
        try:
            return Bar(
                timestamp=datetime.fromtimestamp(row["t"] / 1000, tz=timezone.utc),
                open=row["o"],
                high=row["h"],
                low=row["l"],
                close=row["c"],
                volume=row.get("v", 0.0),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataIntegrityError(f"Malformed aggregate for {ticker}: {row!r}") from e
