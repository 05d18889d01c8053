"""
Thetaline — Backtest Runner
Run an RSI/VIX options backtest from the command line.

Usage:
    python run_backtest.py --start 2024-01-01 --end 2024-06-30
    python run_backtest.py --start 2024-01-01 --end 2024-06-30 --symbols AAPL SPY --synthetic
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from core.cache import TTLCache
from core.config import load_settings
from core.exceptions import ThetalineError
from core.logger import setup_logging
from core.models import BacktestConfig
from data.historical import CachedMarketDataProvider
from data.providers import PolygonDataProvider
from data.storage import SQLiteRunStore
from data.synthetic import synthetic_provider
from engine.backtest import BacktestRunner

logger = logging.getLogger("thetaline.cli")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Thetaline options backtester")
    parser.add_argument("--start", required=True, type=date.fromisoformat, help="Start date YYYY-MM-DD")
    parser.add_argument("--end", required=True, type=date.fromisoformat, help="End date YYYY-MM-DD")
    parser.add_argument("--symbols", nargs="+", help="Tickers to scan (default from settings)")
    parser.add_argument("--budget", type=float, help="$ per trade")
    parser.add_argument("--stop-loss", type=float, help="Stop as fraction of premium, e.g. 0.45")
    parser.add_argument("--profit-target", type=float, help="Target as fraction of premium, e.g. 1.0")
    parser.add_argument("--rsi-oversold", type=float)
    parser.add_argument("--rsi-overbought", type=float)
    parser.add_argument("--min-vix", type=float)
    parser.add_argument("--max-hold-days", type=int)
    parser.add_argument("--synthetic", action="store_true", help="Use random-walk data instead of Polygon")
    parser.add_argument("--export", type=Path, help="Write trades to this Parquet file")
    parser.add_argument("--config", type=Path, help="Path to settings.yaml")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, defaults) -> BacktestConfig:
    """Command-line values override the settings defaults."""
    values = defaults.model_dump()
    overrides = {
        "symbols": args.symbols,
        "budget": args.budget,
        "stop_loss": args.stop_loss,
        "profit_target": args.profit_target,
        "rsi_oversold": args.rsi_oversold,
        "rsi_overbought": args.rsi_overbought,
        "min_vix": args.min_vix,
        "max_hold_days": args.max_hold_days,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return BacktestConfig(start_date=args.start, end_date=args.end, **values)


async def _run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    setup_logging(settings.logging)

    config = build_config(args, settings.backtest)
    if args.synthetic:
        source = synthetic_provider(config.symbols, config.start_date, config.end_date)
    else:
        source = PolygonDataProvider(settings.provider)
    provider = CachedMarketDataProvider(
        source, cache=TTLCache(), ttl=settings.engine.cache_ttl_seconds,
    )
    store = SQLiteRunStore(settings.data.db_path)
    runner = BacktestRunner(provider, store, max_concurrency=settings.engine.max_concurrency)

    try:
        report = await runner.run_report(config)
    finally:
        await provider.close()

    print(report.summary_text())

    if report.results:
        print("\n  First 5 Trades:")
        print("  " + "-" * 80)
        for r in report.results[:5]:
            s = r.signal
            print(
                f"  {s.date} -> {r.exit_date} | {s.ticker:5s} {s.option_type.value:4s} "
                f"K={s.strike:,.0f} x{s.contracts} | "
                f"Entry: ${s.entry_premium:,.2f} | Exit: ${r.exit_premium:,.2f} | "
                f"{r.exit_reason.value:6s} | P&L: ${r.pnl:+,.2f}"
            )

    if args.export:
        path = store.export_trades(report.run_id, args.export)
        print(f"\n[OK] Trades exported to {path}")

    logger.info("Run %s stored in %s", report.run_id, settings.data.db_path)
    print(f"\n[OK] Run {report.run_id} saved to {settings.data.db_path}\n")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except ThetalineError as e:
        print(f"\n[!] Backtest failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
