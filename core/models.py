"""
Thetaline — Core Data Models
All domain objects passed between the signal scanner, the simulator,
the aggregator and the run store. Every record is frozen once created.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.exceptions import ConfigError

DEFAULT_SYMBOLS = ["AAPL", "TSLA", "NVDA", "SPY", "QQQ"]
CONTRACT_MULTIPLIER = 100


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"


class ExitReason(str, Enum):
    TARGET = "target"
    STOP = "stop"
    EXPIRY = "expiry"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

class Bar(BaseModel):
    """Single daily OHLCV bar."""
    model_config = ConfigDict(frozen=True)

    timestamp: dt.datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def date(self) -> dt.date:
        return self.timestamp.date()


class Greeks(BaseModel):
    """Option greeks. Theta per calendar day, vega and rho per 1 point."""
    model_config = ConfigDict(frozen=True)

    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0


# ---------------------------------------------------------------------------
# Backtest configuration
# ---------------------------------------------------------------------------

class BacktestConfig(BaseModel):
    """
    Parameters of a single backtest run.

    Fractions (stop_loss, profit_target) are relative to the entry premium:
    stop_loss=0.45 exits once the option has lost 45% of its value.
    Invalid combinations raise ConfigError on construction.
    """
    model_config = ConfigDict(frozen=True)

    start_date: dt.date
    end_date: dt.date
    symbols: list[str] = Field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    budget: float = 1000.0
    stop_loss: float = 0.45
    profit_target: float = 1.0
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    min_vix: float = 15.0
    max_hold_days: int = 10
    rsi_period: int = 14

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid backtest config: {e}") from e

    @model_validator(mode="after")
    def _check_ranges(self) -> "BacktestConfig":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        if not self.symbols:
            raise ValueError("symbols must not be empty")
        if self.budget <= 0:
            raise ValueError("budget must be positive")
        if self.stop_loss <= 0:
            raise ValueError("stop_loss must be positive")
        if self.profit_target <= 0:
            raise ValueError("profit_target must be positive")
        if not (0 <= self.rsi_oversold < self.rsi_overbought <= 100):
            raise ValueError("require 0 <= rsi_oversold < rsi_overbought <= 100")
        if self.max_hold_days < 1:
            raise ValueError("max_hold_days must be >= 1")
        if self.rsi_period < 1:
            raise ValueError("rsi_period must be >= 1")
        return self


# ---------------------------------------------------------------------------
# Signals & trades
# ---------------------------------------------------------------------------

class TradeSignal(BaseModel):
    """Entry signal produced by the RSI/VIX scanner."""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    ticker: str
    option_type: OptionType
    strike: float
    expiry: dt.date
    entry_premium: float = Field(gt=0.05)
    contracts: int = Field(ge=1)
    rsi: float
    vix: float
    stock_price: float
    iv: float


class TradeResult(BaseModel):
    """Outcome of simulating one signal to its exit."""
    model_config = ConfigDict(frozen=True)

    signal: TradeSignal
    exit_date: dt.date
    exit_premium: float
    exit_reason: ExitReason
    pnl: float
    roi: float                  # fraction of entry premium
    max_drawdown: float         # worst ROI seen while open, <= 0

    @property
    def ticker(self) -> str:
        return self.signal.ticker

    @property
    def holding_days(self) -> int:
        return (self.exit_date - self.signal.date).days


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

class ProfitFactor(BaseModel):
    """
    Gross profit over gross loss.

    A run without losing trades has no finite ratio; it is tagged
    ``no_losses`` instead of carrying a float infinity.
    """
    model_config = ConfigDict(frozen=True)

    kind: str = "ratio"         # "ratio" | "no_losses"
    value: Optional[float] = 0.0

    @classmethod
    def ratio(cls, value: float) -> "ProfitFactor":
        return cls(kind="ratio", value=value)

    @classmethod
    def no_losses(cls) -> "ProfitFactor":
        return cls(kind="no_losses", value=None)

    @property
    def is_no_losses(self) -> bool:
        return self.kind == "no_losses"

    def __str__(self) -> str:
        if self.is_no_losses:
            return "no losses"
        return f"{self.value:.2f}"


class ExitStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    pnl: float = 0.0


class RunSummary(BaseModel):
    """Portfolio statistics derived wholly from a run's trade results."""
    model_config = ConfigDict(frozen=True)

    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0           # %
    avg_roi: float = 0.0            # %
    profit_factor: ProfitFactor = Field(default_factory=ProfitFactor)
    max_drawdown: float = 0.0       # %
    total_pnl: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    exit_breakdown: dict[str, ExitStats] = Field(default_factory=dict)


class RunRecord(BaseModel):
    """Persisted backtest run row."""
    model_config = ConfigDict(frozen=True)

    id: str
    status: RunStatus
    config: BacktestConfig
    summary: Optional[RunSummary] = None
    started_at: dt.datetime
    completed_at: Optional[dt.datetime] = None
    error_message: Optional[str] = None
