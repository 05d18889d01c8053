"""
Thetaline — Run Store
SQLite for backtest runs and their trades, Parquet for trade exports.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import closing, contextmanager
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional

import pandas as pd

from core.clock import Clock, SystemClock
from core.exceptions import RunNotFoundError, StoreError
from core.models import (
    BacktestConfig,
    ExitReason,
    OptionType,
    RunRecord,
    RunStatus,
    RunSummary,
    TradeResult,
    TradeSignal,
)
from engine.analytics import results_to_dataframe

logger = logging.getLogger("thetaline.data.storage")


def new_run_id() -> str:
    return str(uuid.uuid4())[:8]


class RunStore(ABC):
    """
    Persistence for backtest runs.

    A run is created as ``running``, receives trades one at a time as they
    are simulated, and ends either ``completed`` (with a summary) or
    ``failed`` (with an error message).
    """

    @abstractmethod
    def create_run(self, config: BacktestConfig) -> str:
        """Insert a running record and return its id."""
        ...

    @abstractmethod
    def save_trade_result(self, run_id: str, result: TradeResult) -> None:
        ...

    @abstractmethod
    def complete_run(self, run_id: str, summary: RunSummary) -> None:
        ...

    @abstractmethod
    def fail_run(self, run_id: str, message: str) -> None:
        ...

    @abstractmethod
    def get_run(self, run_id: str) -> RunRecord:
        ...

    @abstractmethod
    def get_trades(self, run_id: str) -> list[TradeResult]:
        """Trades of a run, ordered by entry date then ticker."""
        ...

    def export_trades(self, run_id: str, path: Path) -> Path:
        """Write a run's trades to a Parquet file."""
        df = results_to_dataframe(self.get_trades(run_id))
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_parquet(path, index=False, engine="pyarrow")
        logger.info("Exported %d trades of run %s to %s", len(df), run_id, path)
        return path


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryRunStore(RunStore):
    """Dict-backed store for scripts and tests."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._runs: dict[str, RunRecord] = {}
        self._trades: dict[str, list[TradeResult]] = {}

    def create_run(self, config: BacktestConfig) -> str:
        run_id = new_run_id()
        self._runs[run_id] = RunRecord(
            id=run_id, status=RunStatus.RUNNING, config=config, started_at=self._clock.now(),
        )
        self._trades[run_id] = []
        return run_id

    def save_trade_result(self, run_id: str, result: TradeResult) -> None:
        self._require(run_id)
        self._trades[run_id].append(result)

    def complete_run(self, run_id: str, summary: RunSummary) -> None:
        run = self._require(run_id)
        self._runs[run_id] = run.model_copy(update={
            "status": RunStatus.COMPLETED,
            "summary": summary,
            "completed_at": self._clock.now(),
        })

    def fail_run(self, run_id: str, message: str) -> None:
        run = self._require(run_id)
        self._runs[run_id] = run.model_copy(update={
            "status": RunStatus.FAILED,
            "error_message": message,
            "completed_at": self._clock.now(),
        })

    def get_run(self, run_id: str) -> RunRecord:
        return self._require(run_id)

    def get_trades(self, run_id: str) -> list[TradeResult]:
        self._require(run_id)
        return sorted(self._trades[run_id], key=lambda r: (r.signal.date, r.signal.ticker))

    def _require(self, run_id: str) -> RunRecord:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SQLiteRunStore(RunStore):
    """
    SQLite-backed run store.

    ROI and drawdown are stored as percentages. Signal context
    (rsi, vix, iv) and market context (stock price) are JSON columns.
    """

    def __init__(self, db_path: Path | str, clock: Optional[Clock] = None):
        self._db_path = Path(db_path)
        self._clock = clock or SystemClock()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    # ------------------------------------------------------------------
    # SQLite initialization
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        """Create SQLite tables if they don't exist."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS backtest_runs (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL DEFAULT 'running',
                    config TEXT NOT NULL,
                    summary TEXT,
                    started_at TIMESTAMP NOT NULL,
                    completed_at TIMESTAMP,
                    error_message TEXT
                );

                CREATE TABLE IF NOT EXISTS backtest_trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    ticker TEXT NOT NULL,
                    option_type TEXT NOT NULL,
                    strike REAL NOT NULL,
                    entry_date TEXT NOT NULL,
                    expiry_date TEXT NOT NULL,
                    entry_premium REAL NOT NULL,
                    contracts INTEGER NOT NULL,
                    exit_date TEXT NOT NULL,
                    exit_premium REAL NOT NULL,
                    exit_reason TEXT NOT NULL,
                    pnl REAL NOT NULL,
                    roi REAL NOT NULL,
                    max_drawdown REAL NOT NULL,
                    signals TEXT DEFAULT '{}',
                    market_context TEXT DEFAULT '{}',
                    created_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES backtest_runs(id)
                );

                CREATE INDEX IF NOT EXISTS idx_trades_run ON backtest_trades(run_id);
            """)
            logger.debug("SQLite database initialized at %s", self._db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Connection committed (or rolled back) as a transaction, then closed."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def create_run(self, config: BacktestConfig) -> str:
        run_id = new_run_id()
        try:
            with self._connect() as conn:
                conn.execute("""
                    INSERT INTO backtest_runs (id, status, config, started_at)
                    VALUES (?, ?, ?, ?)
                """, (run_id, RunStatus.RUNNING.value, config.model_dump_json(),
                      self._clock.now().isoformat()))
        except sqlite3.Error as e:
            raise StoreError(f"Could not create backtest run: {e}") from e
        logger.info("Created backtest run %s", run_id)
        return run_id

    def complete_run(self, run_id: str, summary: RunSummary) -> None:
        self._update_run(run_id, RunStatus.COMPLETED, summary=summary.model_dump_json())

    def fail_run(self, run_id: str, message: str) -> None:
        self._update_run(run_id, RunStatus.FAILED, error_message=message)

    def _update_run(self, run_id: str, status: RunStatus, summary: Optional[str] = None,
                    error_message: Optional[str] = None) -> None:
        try:
            with self._connect() as conn:
                cur = conn.execute("""
                    UPDATE backtest_runs
                    SET status = ?, summary = ?, error_message = ?, completed_at = ?
                    WHERE id = ?
                """, (status.value, summary, error_message,
                      self._clock.now().isoformat(), run_id))
                updated = cur.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"Could not update run {run_id}: {e}") from e
        if updated == 0:
            raise RunNotFoundError(run_id)

    def get_run(self, run_id: str) -> RunRecord:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM backtest_runs WHERE id = ?", (run_id,)).fetchone()
        if row is None:
            raise RunNotFoundError(run_id)

        return RunRecord(
            id=row["id"],
            status=RunStatus(row["status"]),
            config=BacktestConfig.model_validate_json(row["config"]),
            summary=RunSummary.model_validate_json(row["summary"]) if row["summary"] else None,
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
            error_message=row["error_message"],
        )

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    def save_trade_result(self, run_id: str, result: TradeResult) -> None:
        s = result.signal
        try:
            with self._connect() as conn:
                conn.execute("""
                    INSERT INTO backtest_trades
                    (run_id, ticker, option_type, strike, entry_date, expiry_date,
                     entry_premium, contracts, exit_date, exit_premium, exit_reason,
                     pnl, roi, max_drawdown, signals, market_context, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    run_id, s.ticker, s.option_type.value, s.strike,
                    s.date.isoformat(), s.expiry.isoformat(),
                    s.entry_premium, s.contracts,
                    result.exit_date.isoformat(), result.exit_premium,
                    result.exit_reason.value, result.pnl,
                    result.roi * 100, result.max_drawdown * 100,
                    json.dumps({"rsi": s.rsi, "vix": s.vix, "iv": s.iv}),
                    json.dumps({"stock_price": s.stock_price}),
                    self._clock.now().isoformat(),
                ))
        except sqlite3.Error as e:
            raise StoreError(f"Could not save trade for run {run_id}: {e}") from e

    def get_trades(self, run_id: str) -> list[TradeResult]:
        self.get_run(run_id)
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM backtest_trades WHERE run_id = ?
                ORDER BY entry_date, ticker, id
            """, (run_id,)).fetchall()
        return [self._row_to_result(row) for row in rows]

    def trades_frame(self, run_id: str) -> pd.DataFrame:
        """Raw trade rows of a run as stored (roi and drawdown in %)."""
        with closing(sqlite3.connect(self._db_path)) as conn:
            return pd.read_sql_query(
                "SELECT * FROM backtest_trades WHERE run_id = ? ORDER BY entry_date, ticker, id",
                conn, params=(run_id,),
            )

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> TradeResult:
        signals = json.loads(row["signals"] or "{}")
        market = json.loads(row["market_context"] or "{}")
        signal = TradeSignal(
            date=date.fromisoformat(row["entry_date"]),
            ticker=row["ticker"],
            option_type=OptionType(row["option_type"]),
            strike=row["strike"],
            expiry=date.fromisoformat(row["expiry_date"]),
            entry_premium=row["entry_premium"],
            contracts=row["contracts"],
            rsi=signals.get("rsi", 0.0),
            vix=signals.get("vix", 0.0),
            iv=signals.get("iv", 0.0),
            stock_price=market.get("stock_price", 0.0),
        )
        return TradeResult(
            signal=signal,
            exit_date=date.fromisoformat(row["exit_date"]),
            exit_premium=row["exit_premium"],
            exit_reason=ExitReason(row["exit_reason"]),
            pnl=row["pnl"],
            roi=row["roi"] / 100,
            max_drawdown=row["max_drawdown"] / 100,
        )
