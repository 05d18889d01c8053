"""
Thetaline — Trade Simulator
============================
Walks one option signal forward through daily closes, repricing with
Black-Scholes each day and applying the exit rules in a fixed order:

  A) Stop-loss      ROI <= -stop_loss, exit at the repriced premium
  B) Profit target  ROI >= profit_target, exit at the repriced premium
  C) Expiry         days to expiry <= 0, exit at intrinsic value

A stop and a target on the same day resolve as a stop. A series that runs
out before any exit closes at the last bar's intrinsic value as an expiry.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence

from core.models import (
    CONTRACT_MULTIPLIER,
    BacktestConfig,
    Bar,
    ExitReason,
    TradeResult,
    TradeSignal,
)
from strategy.options import RISK_FREE_RATE, black_scholes_price, intrinsic_value

logger = logging.getLogger("thetaline.engine.simulator")
trade_log = logging.getLogger("thetaline.trades")


class PositionState(str, Enum):
    OPEN = "OPEN"
    STOPPED = "STOPPED"
    TARGET_HIT = "TARGET_HIT"
    EXPIRED = "EXPIRED"


_STATE_FOR_REASON = {
    ExitReason.STOP: PositionState.STOPPED,
    ExitReason.TARGET: PositionState.TARGET_HIT,
    ExitReason.EXPIRY: PositionState.EXPIRED,
}


class TradeSimulator:
    """Day-by-day exit simulation for a single backtest config."""

    def __init__(self, config: BacktestConfig):
        self.stop_loss = config.stop_loss
        self.profit_target = config.profit_target

    def simulate(self, signal: TradeSignal, bars: Sequence[Bar]) -> Optional[TradeResult]:
        """
        Simulate `signal` against its forward bars.

        Bars dated before the entry date are ignored. Returns None when the
        series is empty from the entry date onward. Exits are only checked
        on days after entry; if none triggers, the position is closed at the
        last bar (possibly the entry bar itself) at intrinsic value.
        """
        series = [b for b in bars if b.date >= signal.date]
        if not series:
            logger.debug("%s %s: no bars from entry onward", signal.ticker, signal.date)
            return None

        entry = signal.entry_premium
        max_drawdown = 0.0
        state = PositionState.OPEN
        exit_bar = series[-1]
        exit_premium = 0.0
        exit_reason = ExitReason.EXPIRY

        for bar in (b for b in series if b.date > signal.date):
            days_to_expiry = (signal.expiry - bar.date).days
            premium = black_scholes_price(
                bar.close,
                signal.strike,
                max(0, days_to_expiry / 365),
                RISK_FREE_RATE,
                signal.iv,
                signal.option_type,
            )
            roi = (premium - entry) / entry
            max_drawdown = min(max_drawdown, roi)

            if roi <= -self.stop_loss:
                exit_reason, exit_premium = ExitReason.STOP, premium
            elif roi >= self.profit_target:
                exit_reason, exit_premium = ExitReason.TARGET, premium
            elif days_to_expiry <= 0:
                exit_reason = ExitReason.EXPIRY
                exit_premium = intrinsic_value(bar.close, signal.strike, signal.option_type)
            else:
                continue

            state = _STATE_FOR_REASON[exit_reason]
            exit_bar = bar
            break

        if state == PositionState.OPEN:
            # Ran out of data before expiry
            exit_reason = ExitReason.EXPIRY
            exit_premium = intrinsic_value(exit_bar.close, signal.strike, signal.option_type)
            state = PositionState.EXPIRED

        return self._close(signal, exit_bar, exit_premium, exit_reason, max_drawdown)

    def _close(self, signal: TradeSignal, bar: Bar, exit_premium: float,
               reason: ExitReason, max_drawdown: float) -> TradeResult:
        entry = signal.entry_premium
        pnl = (exit_premium - entry) * signal.contracts * CONTRACT_MULTIPLIER
        result = TradeResult(
            signal=signal,
            exit_date=bar.date,
            exit_premium=exit_premium,
            exit_reason=reason,
            pnl=pnl,
            roi=(exit_premium - entry) / entry,
            max_drawdown=max_drawdown,
        )
        trade_log.info(
            "%s %s K=%.2f x%d | %s -> %s | %.4f -> %.4f | %s | pnl=%.2f",
            signal.ticker, signal.option_type.value, signal.strike, signal.contracts,
            signal.date, bar.date, entry, exit_premium, reason.value, pnl,
        )
        return result
