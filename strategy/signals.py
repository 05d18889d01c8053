"""
Thetaline — RSI / VIX Signal Generator
Scans a symbol's daily bars and emits one-week option entries:
oversold RSI buys a 2% OTM call, overbought RSI buys a 2% OTM put,
both gated by a minimum volatility index level.
"""

from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import Mapping, Sequence

from core.models import CONTRACT_MULTIPLIER, BacktestConfig, Bar, OptionType, TradeSignal
from strategy.indicators import bars_to_frame, calculate_rsi
from strategy.options import MIN_TICK, RISK_FREE_RATE, black_scholes_price

logger = logging.getLogger("thetaline.strategy.signals")

ENTRY_IV = 0.35
EXPIRY_DAYS = 7
VIX_FALLBACK = 20.0
CALL_STRIKE_FACTOR = 1.02
PUT_STRIKE_FACTOR = 0.98


def round_half_up(x: float) -> int:
    """Round to nearest integer, halves away from zero."""
    if x < 0:
        return -math.floor(-x + 0.5)
    return math.floor(x + 0.5)


def build_vix_map(vix_bars: Sequence[Bar]) -> dict[date, float]:
    """Volatility index close keyed by date."""
    return {bar.date: bar.close for bar in vix_bars}


class SignalGenerator:
    """RSI/VIX entry scanner for a single backtest config."""

    def __init__(self, config: BacktestConfig):
        self.config = config

    def scan(self, ticker: str, bars: Sequence[Bar],
             vix_map: Mapping[date, float]) -> list[TradeSignal]:
        """Return the symbol's signals in date order."""
        cfg = self.config
        period = cfg.rsi_period
        if len(bars) < period + 1:
            logger.info("%s: %d bars, need %d for RSI, skipped", ticker, len(bars), period + 1)
            return []

        frame = bars_to_frame(bars)
        rsi = calculate_rsi(frame["close"], period).to_numpy()

        signals: list[TradeSignal] = []
        # The last bar has nothing after it to simulate against
        for i in range(period, len(bars) - 1):
            value = rsi[i]
            if math.isnan(value):
                continue

            bar = bars[i]
            vix = vix_map.get(bar.date, VIX_FALLBACK)
            if vix < cfg.min_vix:
                continue

            if value < cfg.rsi_oversold:
                option_type = OptionType.CALL
                strike = round_half_up(bar.close * CALL_STRIKE_FACTOR)
            elif value > cfg.rsi_overbought:
                option_type = OptionType.PUT
                strike = round_half_up(bar.close * PUT_STRIKE_FACTOR)
            else:
                continue

            signal = self._build_signal(ticker, bar, option_type, float(strike), value, vix)
            if signal is not None:
                signals.append(signal)

        logger.info("%s: %d signals from %d bars", ticker, len(signals), len(bars))
        return signals

    def _build_signal(self, ticker: str, bar: Bar, option_type: OptionType,
                      strike: float, rsi: float, vix: float) -> TradeSignal | None:
        premium = black_scholes_price(
            bar.close, strike, EXPIRY_DAYS / 365, RISK_FREE_RATE, ENTRY_IV, option_type,
        )
        contracts = math.floor(self.config.budget / (premium * CONTRACT_MULTIPLIER))
        if contracts == 0 or premium <= MIN_TICK:
            logger.debug(
                "%s %s: discarded %s K=%.0f premium=%.4f contracts=%d",
                ticker, bar.date, option_type.value, strike, premium, contracts,
            )
            return None

        return TradeSignal(
            date=bar.date,
            ticker=ticker,
            option_type=option_type,
            strike=strike,
            expiry=bar.date + timedelta(days=EXPIRY_DAYS),
            entry_premium=premium,
            contracts=contracts,
            rsi=float(rsi),
            vix=float(vix),
            stock_price=bar.close,
            iv=ENTRY_IV,
        )
