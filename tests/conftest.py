"""Shared fixtures: bar builders, configs, stores."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Sequence

import pytest

from core.clock import FixedClock
from core.models import (
    BacktestConfig,
    Bar,
    ExitReason,
    OptionType,
    TradeResult,
    TradeSignal,
)

START = date(2024, 1, 1)


def make_bar(day: date, close: float) -> Bar:
    return Bar(
        timestamp=datetime.combine(day, time(), tzinfo=timezone.utc),
        open=close, high=close, low=close, close=close, volume=1_000_000,
    )


def make_bars(closes: Sequence[float], start: date = START) -> list[Bar]:
    """One bar per consecutive calendar day."""
    return [make_bar(start + timedelta(days=i), c) for i, c in enumerate(closes)]


def make_signal(
    day: date = date(2024, 1, 10),
    ticker: str = "AAPL",
    option_type: OptionType = OptionType.CALL,
    strike: float = 102.0,
    entry_premium: float = 2.0,
    contracts: int = 5,
    expiry_days: int = 7,
    stock_price: float = 100.0,
) -> TradeSignal:
    return TradeSignal(
        date=day,
        ticker=ticker,
        option_type=option_type,
        strike=strike,
        expiry=day + timedelta(days=expiry_days),
        entry_premium=entry_premium,
        contracts=contracts,
        rsi=25.0,
        vix=20.0,
        stock_price=stock_price,
        iv=0.35,
    )


def make_result(
    pnl: float,
    roi: float = 0.0,
    max_drawdown: float = 0.0,
    exit_reason: ExitReason = ExitReason.TARGET,
    day: date = date(2024, 1, 10),
    ticker: str = "AAPL",
) -> TradeResult:
    signal = make_signal(day=day, ticker=ticker)
    return TradeResult(
        signal=signal,
        exit_date=day + timedelta(days=2),
        exit_premium=signal.entry_premium * (1 + roi),
        exit_reason=exit_reason,
        pnl=pnl,
        roi=roi,
        max_drawdown=max_drawdown,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> BacktestConfig:
    return BacktestConfig(
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        symbols=["AAPL"],
    )


@pytest.fixture
def short_rsi_config() -> BacktestConfig:
    """Two-bar RSI so hand-built series trigger signals quickly."""
    return BacktestConfig(
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        symbols=["AAA"],
        rsi_period=2,
    )
