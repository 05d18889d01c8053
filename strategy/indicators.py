"""
Thetaline — Technical Indicators
Wilder RSI over daily closes. Indicators return pandas Series aligned to bars.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from core.models import Bar

logger = logging.getLogger("thetaline.strategy.indicators")


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """OHLCV DataFrame indexed by bar date."""
    if not bars:
        return pd.DataFrame(columns=["open", "high", "low", "close", "volume"])
    df = pd.DataFrame([b.model_dump() for b in bars])
    df.index = pd.Index([b.date for b in bars], name="date")
    return df.drop(columns=["timestamp"])


def calculate_rsi(closes: Sequence[float] | pd.Series, period: int = 14) -> pd.Series:
    """
    Relative Strength Index with Wilder smoothing.

    The first `period` entries are NaN. The first value sits at index
    `period`, the bar whose close completes the first `period` changes.
    A window without losses reads 100.
    """
    if period < 1:
        raise ValueError(f"RSI period must be >= 1, got {period}")

    index = closes.index if isinstance(closes, pd.Series) else None
    values = np.asarray(closes, dtype=float)
    out = np.full(len(values), np.nan)

    if len(values) < period + 1:
        logger.debug("RSI: %d closes < period+1 (%d), all warm-up", len(values), period + 1)
        return pd.Series(out, index=index, name="rsi")

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_value(avg_gain, avg_loss)

    return pd.Series(out, index=index, name="rsi")


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)
