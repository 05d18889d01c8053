"""
Thetaline — Performance Analytics
Aggregates simulated option trades into run-level statistics.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import pandas as pd

from core.models import ExitReason, ExitStats, ProfitFactor, RunSummary, TradeResult

logger = logging.getLogger("thetaline.engine.analytics")


class PerformanceAnalytics:
    """
    Computes a RunSummary from trade results.

    Metrics:
    - Win/loss counts and win rate (%)
    - Average ROI (%)
    - Profit factor (tagged ``no_losses`` when nothing lost)
    - Worst intra-trade drawdown (%)
    - Gross/net P&L, average win and loss
    - Count and P&L per exit reason

    Sums use math.fsum, so the result does not depend on trade order.
    A trade with pnl == 0 counts as a loss.
    """

    def __init__(self, results: Sequence[TradeResult]):
        self._results = list(results)

    def compute(self) -> RunSummary:
        if not self._results:
            return RunSummary()

        pnls = [r.pnl for r in self._results]
        wins = [p for p in pnls if p > 0]
        losses = [p for p in pnls if p <= 0]
        total = len(pnls)

        gross_profit = math.fsum(wins)
        gross_loss = abs(math.fsum(losses))

        return RunSummary(
            total_trades=total,
            wins=len(wins),
            losses=len(losses),
            win_rate=len(wins) / total * 100,
            avg_roi=math.fsum(r.roi for r in self._results) / total * 100,
            profit_factor=self._profit_factor(gross_profit, gross_loss),
            max_drawdown=min(r.max_drawdown for r in self._results) * 100,
            total_pnl=math.fsum(pnls),
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            avg_win=gross_profit / len(wins) if wins else 0.0,
            avg_loss=-gross_loss / len(losses) if losses else 0.0,
            exit_breakdown=self._exit_breakdown(),
        )

    @staticmethod
    def _profit_factor(gross_profit: float, gross_loss: float) -> ProfitFactor:
        if gross_loss > 0:
            return ProfitFactor.ratio(gross_profit / gross_loss)
        if gross_profit > 0:
            return ProfitFactor.no_losses()
        return ProfitFactor.ratio(0.0)

    def _exit_breakdown(self) -> dict[str, ExitStats]:
        breakdown = {}
        for reason in ExitReason:
            pnls = [r.pnl for r in self._results if r.exit_reason == reason]
            if pnls:
                breakdown[reason.value] = ExitStats(count=len(pnls), pnl=math.fsum(pnls))
        return breakdown

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten trades into a DataFrame for export and further analysis."""
        return results_to_dataframe(self._results)


def summarize(results: Sequence[TradeResult]) -> RunSummary:
    """Shortcut for PerformanceAnalytics(results).compute()."""
    summary = PerformanceAnalytics(results).compute()
    logger.debug(
        "Summary: %d trades, win rate %.2f%%, PF %s",
        summary.total_trades, summary.win_rate, summary.profit_factor,
    )
    return summary


TRADE_COLUMNS = [
    "ticker", "option_type", "strike", "entry_date", "expiry", "entry_premium",
    "contracts", "rsi", "vix", "iv", "stock_price", "exit_date", "exit_premium",
    "exit_reason", "pnl", "roi", "max_drawdown", "holding_days",
]


def results_to_dataframe(results: Sequence[TradeResult]) -> pd.DataFrame:
    if not results:
        return pd.DataFrame(columns=TRADE_COLUMNS)

    return pd.DataFrame([{
        "ticker": r.signal.ticker,
        "option_type": r.signal.option_type.value,
        "strike": r.signal.strike,
        "entry_date": r.signal.date,
        "expiry": r.signal.expiry,
        "entry_premium": r.signal.entry_premium,
        "contracts": r.signal.contracts,
        "rsi": r.signal.rsi,
        "vix": r.signal.vix,
        "iv": r.signal.iv,
        "stock_price": r.signal.stock_price,
        "exit_date": r.exit_date,
        "exit_premium": r.exit_premium,
        "exit_reason": r.exit_reason.value,
        "pnl": r.pnl,
        "roi": r.roi,
        "max_drawdown": r.max_drawdown,
        "holding_days": r.holding_days,
    } for r in results], columns=TRADE_COLUMNS)
