from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from fxengine.backtest import metrics
from fxengine.backtest.types import (
    BacktestMetrics,
    BacktestTrade,
    EquityPoint,
    ExitReason,
    PositionSide,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _trade(n: int, pnl: float, *, commission: float = 0.0, days: int = 0) -> BacktestTrade:
    entry = T0 + timedelta(days=days, hours=n)
    return BacktestTrade(
        trade_id=n,
        side=PositionSide.LONG,
        entry_index=n,
        exit_index=n + 1,
        entry_time=entry,
        exit_time=entry + timedelta(hours=2),
        entry_price=1.1,
        exit_price=1.1,
        lot_size=0.1,
        stop_loss=1.09,
        take_profit=1.12,
        pnl=pnl,
        commission=commission,
        reason=ExitReason.TAKE_PROFIT if pnl > 0 else ExitReason.STOP_LOSS,
    )


def _equity(values, freq_hours: int = 1):
    return [
        EquityPoint(i, T0 + timedelta(hours=i * freq_hours), float(v), float(v))
        for i, v in enumerate(values)
    ]


def test_empty_ledger_is_all_zero():
    result = metrics.compute_metrics([], _equity([100, 100]), 100.0)
    assert result == BacktestMetrics()


def test_ledger_statistics():
    trades = [_trade(1, 100), _trade(2, -50), _trade(3, 200), _trade(4, -50)]
    result = metrics.compute_metrics(trades, _equity([1000, 1100, 1050, 1250, 1200]), 1000.0)

    assert result.total_trades == 4
    assert result.win_rate == pytest.approx(50.0)
    assert result.gross_profit == pytest.approx(300.0)
    assert result.gross_loss == pytest.approx(100.0)
    assert result.profit_factor == pytest.approx(3.0)
    assert result.average_win == pytest.approx(150.0)
    assert result.largest_loss == pytest.approx(-50.0)
    assert result.max_consecutive_wins == 1
    assert result.expectancy == pytest.approx(0.5 * 150 - 0.5 * 50)
    assert result.average_holding_time == pytest.approx(2.0)


def test_commission_turns_flat_trade_into_loss():
    result = metrics.compute_metrics([_trade(1, 5.0, commission=5.0)], _equity([100, 100]), 100.0)
    assert result.winning_trades == 0
    assert result.losing_trades == 1
    assert result.total_commission == pytest.approx(5.0)


def test_all_wins_use_sentinel():
    trades = [_trade(1, 10), _trade(2, 20)]
    result = metrics.compute_metrics(
        trades, _equity([100, 110, 130]), 100.0, ratio_sentinel=999.0
    )

    assert result.profit_factor == 999.0
    assert result.max_consecutive_losses == 0
    assert result.max_drawdown == 0.0
    assert result.recovery_factor == 999.0


def test_drawdown_from_running_peak():
    curve = _equity([100, 120, 90, 130])
    result = metrics.compute_metrics([_trade(1, 30)], curve, 100.0)

    assert result.max_drawdown == pytest.approx(25.0)
    assert result.max_drawdown_amount == pytest.approx(30.0)
    dd = [v for _, v in metrics.drawdown_curve(curve)]
    assert dd == pytest.approx([0.0, 0.0, 25.0, 0.0])
    assert all(0.0 <= v <= 100.0 for v in dd)


def test_monthly_returns_grouped_by_exit_month():
    trades = [_trade(1, 10, days=0), _trade(2, -4, days=1), _trade(3, 7, days=40)]
    months = metrics.monthly_returns(trades)

    assert list(months) == ["2024-01", "2024-02"]
    assert months["2024-01"] == pytest.approx(6.0)
    assert months["2024-02"] == pytest.approx(7.0)


@pytest.mark.parametrize(
    "freq, expected",
    [("D", 252.0), ("h", 252.0 * 24), ("7D", 365.25 / 7)],
)
def test_periods_per_year(freq, expected):
    idx = pd.date_range("2024-01-01", periods=30, freq=freq)
    assert metrics.infer_periods_per_year(idx, 252) == pytest.approx(expected)


def test_sharpe_sign_follows_returns():
    rising = metrics.compute_metrics([_trade(1, 50)], _equity([100, 101, 103, 104, 106]), 100.0)
    falling = metrics.compute_metrics([_trade(1, -50)], _equity([100, 99, 97, 96, 94]), 100.0)

    assert rising.sharpe_ratio > 0
    assert rising.sortino_ratio > 0
    assert falling.sharpe_ratio < 0
