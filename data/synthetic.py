"""
Thetaline — Synthetic Market Data
Random-walk daily bars for demos and offline runs.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Sequence

import numpy as np
import pandas as pd

from core.models import Bar
from data.providers import InMemoryDataProvider


def generate_sample_bars(
    start: date,
    end: date,
    start_price: float = 100.0,
    daily_vol: float = 0.02,
    drift: float = 0.0003,
    seed: int = 42,
) -> list[Bar]:
    """
    Business-day OHLCV bars following a log-normal random walk.

    Same seed, same bars.
    """
    rng = np.random.default_rng(seed)
    days = pd.bdate_range(start=start, end=end)
    returns = rng.normal(drift, daily_vol, size=len(days))
    closes = start_price * np.exp(np.cumsum(returns))

    bars = []
    prev = start_price
    for day, close in zip(days, closes):
        wick = abs(rng.normal(0, daily_vol / 2)) * close
        bars.append(Bar(
            timestamp=datetime.combine(day.date(), time(), tzinfo=timezone.utc),
            open=round(prev, 2),
            high=round(max(prev, close) + wick, 2),
            low=round(max(min(prev, close) - wick, 0.01), 2),
            close=round(float(close), 2),
            volume=float(rng.integers(1_000_000, 20_000_000)),
        ))
        prev = float(close)
    return bars


def synthetic_provider(symbols: Sequence[str], start: date, end: date,
                       seed: int = 42) -> InMemoryDataProvider:
    """In-memory provider with an independent random walk per symbol plus a VIX series."""
    bars = {
        symbol: generate_sample_bars(start, end, start_price=50.0 + 50.0 * i, seed=seed + i)
        for i, symbol in enumerate(symbols)
    }
    vix = generate_sample_bars(start, end, start_price=18.0, daily_vol=0.05, drift=0.0, seed=seed - 1)
    return InMemoryDataProvider(bars=bars, vix=vix)
