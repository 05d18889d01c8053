"""
Thetaline — Backtest Orchestrator
Fetches market data, scans every symbol for RSI/VIX entries, simulates each
entry to its exit and persists results as they arrive.

Workflow:
1. Create the run record (status running)
2. Load the volatility index once for the whole window
3. Scan each symbol concurrently for signals
4. Simulate each signal concurrently against its forward bars
5. Aggregate and mark the run completed (or failed, then re-raise)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from core.clock import Clock, SystemClock
from core.exceptions import DataError, RunCreationError
from core.models import BacktestConfig, RunSummary, TradeResult, TradeSignal
from data.providers import MarketDataProvider
from data.storage import RunStore
from engine.analytics import summarize
from engine.simulator import TradeSimulator
from strategy.signals import SignalGenerator, build_vix_map

logger = logging.getLogger("thetaline.engine.backtest")

DEFAULT_MAX_CONCURRENCY = 4


@dataclass
class BacktestReport:
    """Complete output of one run."""
    run_id: str
    config: BacktestConfig
    signals_generated: int = 0
    results: list[TradeResult] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def summary_text(self) -> str:
        """Human-readable summary."""
        s = self.summary
        cfg = self.config
        lines = [
            "=" * 60,
            f"BACKTEST RESULT: run {self.run_id}",
            "=" * 60,
            f"  Period: {cfg.start_date} to {cfg.end_date}",
            f"  Symbols: {', '.join(cfg.symbols)}",
            f"  Signals: {self.signals_generated} | Trades: {s.total_trades}",
            f"  Winners: {s.wins} | Losers: {s.losses}",
            f"  Win Rate: {s.win_rate:.1f}%",
            f"  Avg ROI: {s.avg_roi:.2f}%",
            f"  Net P&L: ${s.total_pnl:,.2f}",
            f"  Gross Profit: ${s.gross_profit:,.2f} | Gross Loss: ${s.gross_loss:,.2f}",
            f"  Avg Win: ${s.avg_win:,.2f} | Avg Loss: ${s.avg_loss:,.2f}",
            f"  Profit Factor: {s.profit_factor}",
            f"  Max Drawdown: {s.max_drawdown:.2f}%",
        ]
        if s.exit_breakdown:
            lines.append("  Exit Breakdown:")
            for reason, stats in s.exit_breakdown.items():
                lines.append(f"    {reason}: {stats.count} trades, ${stats.pnl:,.2f}")
        if self.started_at and self.completed_at:
            elapsed = (self.completed_at - self.started_at).total_seconds()
            lines.append(f"  Elapsed: {elapsed:.1f}s")
        lines.append("=" * 60)
        return "\n".join(lines)


class BacktestRunner:
    """
    Runs backtests against a market data provider and a run store.

    Per-symbol and per-signal failures are logged and isolated; anything
    else marks the run failed and propagates.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        store: RunStore,
        clock: Optional[Clock] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self._provider = provider
        self._store = store
        self._clock = clock or SystemClock()
        self._max_concurrency = max_concurrency

    async def run(self, config: BacktestConfig) -> RunSummary:
        report = await self.run_report(config)
        return report.summary

    async def run_report(self, config: BacktestConfig) -> BacktestReport:
        started_at = self._clock.now()
        try:
            run_id = self._store.create_run(config)
        except Exception as e:
            raise RunCreationError(f"Could not create backtest run: {e}") from e

        logger.info(
            "Starting backtest [%s] -- symbols=%s, %s to %s",
            run_id, ",".join(config.symbols), config.start_date, config.end_date,
        )

        try:
            report = await self._execute(run_id, config)
            self._store.complete_run(run_id, report.summary)
        except Exception as e:
            logger.error("Backtest [%s] failed: %s", run_id, e)
            try:
                self._store.fail_run(run_id, str(e))
            except Exception as store_error:
                logger.error("Could not mark run %s failed: %s", run_id, store_error)
            raise

        report.started_at = started_at
        report.completed_at = self._clock.now()
        logger.info(
            "Backtest [%s] complete -- %d signals, %d trades, win rate %.1f%%",
            run_id, report.signals_generated, report.summary.total_trades, report.summary.win_rate,
        )
        return report

    async def _execute(self, run_id: str, config: BacktestConfig) -> BacktestReport:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        vix_map = await self._load_vix(config)

        generator = SignalGenerator(config)
        per_symbol = await asyncio.gather(*[
            self._scan_symbol(generator, symbol, config, vix_map, semaphore)
            for symbol in config.symbols
        ])
        signals = [sig for symbol_signals in per_symbol for sig in symbol_signals]
        logger.info("Generated %d signals across %d symbols", len(signals), len(config.symbols))

        simulator = TradeSimulator(config)
        outcomes = await asyncio.gather(*[
            self._simulate_signal(run_id, simulator, signal, config, semaphore)
            for signal in signals
        ])
        results = [r for r in outcomes if r is not None]

        return BacktestReport(
            run_id=run_id,
            config=config,
            signals_generated=len(signals),
            results=results,
            summary=summarize(results),
        )

    async def _load_vix(self, config: BacktestConfig) -> dict[date, float]:
        try:
            vix_bars = await self._provider.get_volatility_index_history(
                config.start_date, config.end_date,
            )
        except DataError as e:
            logger.warning("Volatility index unavailable, using fallback level: %s", e)
            return {}
        return build_vix_map(vix_bars)

    async def _scan_symbol(
        self,
        generator: SignalGenerator,
        symbol: str,
        config: BacktestConfig,
        vix_map: dict[date, float],
        semaphore: asyncio.Semaphore,
    ) -> list[TradeSignal]:
        async with semaphore:
            try:
                bars = await self._provider.get_daily_bars(symbol, config.start_date, config.end_date)
                return generator.scan(symbol, bars, vix_map)
            except Exception as e:
                logger.error("Signal scan failed for %s: %s", symbol, e)
                return []

    async def _simulate_signal(
        self,
        run_id: str,
        simulator: TradeSimulator,
        signal: TradeSignal,
        config: BacktestConfig,
        semaphore: asyncio.Semaphore,
    ) -> Optional[TradeResult]:
        end = min(
            signal.expiry,
            signal.date + timedelta(days=config.max_hold_days),
            config.end_date,
        )
        async with semaphore:
            try:
                bars = await self._provider.get_daily_bars(signal.ticker, signal.date, end)
                result = simulator.simulate(signal, bars)
            except Exception as e:
                logger.error(
                    "Simulation failed for %s %s %s: %s",
                    signal.ticker, signal.option_type.value, signal.date, e,
                )
                return None

            # Store failures are run-level: they propagate and fail the run
            if result is not None:
                await asyncio.to_thread(self._store.save_trade_result, run_id, result)
            return result


def run_backtest(
    config: BacktestConfig,
    provider: MarketDataProvider,
    store: RunStore,
    clock: Optional[Clock] = None,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> RunSummary:
    """Run a backtest to completion from synchronous code."""
    runner = BacktestRunner(provider, store, clock=clock, max_concurrency=max_concurrency)
    return asyncio.run(runner.run(config))
