"""Tests for run-level statistics."""

from datetime import date

import pytest

from core.models import ExitReason, ProfitFactor, RunSummary
from engine.analytics import PerformanceAnalytics, TRADE_COLUMNS, summarize
from conftest import make_result


def test_mixed_scenario():
    results = [
        make_result(100, roi=0.5, max_drawdown=-0.1),
        make_result(-50, roi=-0.45, max_drawdown=-0.45, exit_reason=ExitReason.STOP),
        make_result(200, roi=1.0, max_drawdown=-0.2),
        make_result(-25, roi=-0.25, max_drawdown=-0.3, exit_reason=ExitReason.EXPIRY),
    ]
    s = summarize(results)

    assert s.total_trades == 4
    assert s.wins == 2
    assert s.losses == 2
    assert s.win_rate == pytest.approx(50.0)
    assert s.gross_profit == pytest.approx(300.0)
    assert s.gross_loss == pytest.approx(75.0)
    assert s.profit_factor == ProfitFactor.ratio(4.0)
    assert s.total_pnl == pytest.approx(225.0)
    assert s.avg_win == pytest.approx(150.0)
    assert s.avg_loss == pytest.approx(-37.5)
    assert s.avg_roi == pytest.approx(20.0)
    assert s.max_drawdown == pytest.approx(-45.0)


def test_exit_breakdown():
    results = [
        make_result(100, exit_reason=ExitReason.TARGET),
        make_result(120, exit_reason=ExitReason.TARGET),
        make_result(-60, exit_reason=ExitReason.STOP),
    ]
    s = summarize(results)
    assert s.exit_breakdown["target"].count == 2
    assert s.exit_breakdown["target"].pnl == pytest.approx(220.0)
    assert s.exit_breakdown["stop"].count == 1
    assert "expiry" not in s.exit_breakdown


def test_all_winners_tagged_no_losses():
    s = summarize([make_result(100, roi=0.5), make_result(40, roi=0.2)])
    assert s.profit_factor.is_no_losses
    assert s.profit_factor.value is None
    assert str(s.profit_factor) == "no losses"
    assert s.losses == 0


def test_break_even_counts_as_loss():
    s = summarize([make_result(0.0), make_result(0.0)])
    assert s.wins == 0
    assert s.losses == 2
    assert s.profit_factor == ProfitFactor.ratio(0.0)
    assert not s.profit_factor.is_no_losses


def test_empty_run():
    s = summarize([])
    assert s == RunSummary()
    assert s.total_trades == 0
    assert s.win_rate == 0
    assert s.avg_roi == 0
    assert s.max_drawdown == 0
    assert s.profit_factor.value == 0.0


def test_order_independent():
    results = [
        make_result(0.1, roi=0.1, max_drawdown=-0.01),
        make_result(0.2, roi=0.2, max_drawdown=-0.02),
        make_result(-0.3, roi=-0.3, max_drawdown=-0.3, exit_reason=ExitReason.STOP),
        make_result(1e16, roi=3.0),
        make_result(-1e16, roi=-1.0, exit_reason=ExitReason.EXPIRY),
    ]
    assert summarize(results) == summarize(list(reversed(results)))
    assert summarize(results) == summarize(results[2:] + results[:2])


def test_to_dataframe():
    results = [make_result(100, day=date(2024, 2, 1), ticker="SPY"), make_result(-20)]
    df = PerformanceAnalytics(results).to_dataframe()
    assert list(df.columns) == TRADE_COLUMNS
    assert len(df) == 2
    assert df.iloc[0]["ticker"] == "SPY"
    assert df.iloc[0]["holding_days"] == 2


def test_to_dataframe_empty():
    df = PerformanceAnalytics([]).to_dataframe()
    assert df.empty
    assert list(df.columns) == TRADE_COLUMNS
