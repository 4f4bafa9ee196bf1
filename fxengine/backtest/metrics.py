# fxengine/backtest/metrics.py
from __future__ import annotations

import math
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from fxengine.backtest.types import BacktestMetrics, BacktestTrade, EquityPoint
from fxengine.core.numeric import safe_ratio
from fxengine.settings import get_backtest_settings

# Very short runs would annualise to extreme values.
MIN_YEARS = 0.25


# -------- Internals --------
def _equity_series(equity: Sequence[EquityPoint]) -> pd.Series:
    if not equity:
        return pd.Series(dtype=float)
    return pd.Series(
        [p.equity for p in equity],
        index=pd.DatetimeIndex([p.timestamp for p in equity]),
        dtype=float,
    )


def _streaks(wins: Sequence[bool]) -> Tuple[int, int]:
    best_win = best_loss = run_win = run_loss = 0
    for won in wins:
        if won:
            run_win += 1
            run_loss = 0
            best_win = max(best_win, run_win)
        else:
            run_loss += 1
            run_win = 0
            best_loss = max(best_loss, run_loss)
    return best_win, best_loss


def _drawdowns(curve: pd.Series) -> Tuple[pd.Series, pd.Series]:
    """Percent and absolute drawdown from the running peak."""
    peak = curve.cummax()
    amount = (peak - curve).clip(lower=0.0)
    pct = (amount / peak.where(peak > 0)).fillna(0.0) * 100.0
    return pct.clip(0.0, 100.0), amount


def _years(curve: pd.Series) -> float:
    if len(curve) < 2:
        return MIN_YEARS
    span = (curve.index[-1] - curve.index[0]).total_seconds() / 86400.0
    return max(MIN_YEARS, span / 365.25)


def _annualized_return_pct(start: float, curve: pd.Series) -> float:
    end = float(curve.iloc[-1])
    if start <= 0:
        return 0.0
    if end <= 0:
        return -100.0
    return ((end / start) ** (1.0 / _years(curve)) - 1.0) * 100.0


# -------- Public API --------
def infer_periods_per_year(
    index: pd.DatetimeIndex, trading_days: Optional[int] = None
) -> float:
    """
    Bars per year implied by the median spacing of ``index``.

    Daily bars give ``trading_days`` and hourly bars ``trading_days * 24``;
    bars longer than a day count calendar periods (weekly bars give ~52).
    """
    days = trading_days or get_backtest_settings().trading_days
    if len(index) < 2:
        return float(days)
    spacing = pd.Series(index).diff().dropna().dt.total_seconds()
    median = float(spacing.median())
    if not median > 0:
        return float(days)
    if median > 86400.0:
        return 365.25 * 86400.0 / median
    return float(days) * 86400.0 / median


def drawdown_curve(equity: Sequence[EquityPoint]) -> List[Tuple[datetime, float]]:
    """Percent drawdown from the running peak for every equity point."""
    curve = _equity_series(equity)
    if curve.empty:
        return []
    pct, _ = _drawdowns(curve)
    return [(p.timestamp, float(v)) for p, v in zip(equity, pct.to_numpy())]


def monthly_returns(trades: Sequence[BacktestTrade]) -> Dict[str, float]:
    """Net pnl per exit month (``YYYY-MM``), months ascending."""
    buckets: Dict[str, float] = {}
    for t in trades:
        month = pd.Timestamp(t.exit_time).strftime("%Y-%m")
        buckets[month] = buckets.get(month, 0.0) + t.net_pnl
    return OrderedDict(sorted(buckets.items()))


def compute_metrics(
    trades: Sequence[BacktestTrade],
    equity: Sequence[EquityPoint],
    initial_balance: float,
    periods_per_year: Optional[float] = None,
    *,
    ratio_sentinel: Optional[float] = None,
) -> BacktestMetrics:
    """
    Derive performance statistics from a trade ledger and its equity curve.

    Args:
        trades (Sequence[BacktestTrade]): Closed trades in exit order.
        equity (Sequence[EquityPoint]): One point per simulated bar.
        initial_balance (float): Starting balance.
        periods_per_year (Optional[float]): Bars per year for Sharpe and
            Sortino; inferred from the equity timestamps when omitted.
        ratio_sentinel (Optional[float]): Value for a ratio with a zero
            denominator and a positive numerator.

    Returns:
        BacktestMetrics: All zeros for an empty ledger. Wins are trades with
        positive net pnl (after commission); flat trades count as losses.
    """
    if not trades:
        return BacktestMetrics()

    bt = get_backtest_settings()
    sentinel = bt.ratio_sentinel if ratio_sentinel is None else ratio_sentinel

    net = np.array([t.net_pnl for t in trades], dtype=float)
    wins = net[net > 0]
    losses = net[net <= 0]
    n = len(net)

    gross_profit = float(wins.sum())
    gross_loss = float(abs(losses.sum()))
    net_profit = float(net.sum())
    win_rate = len(wins) / n * 100.0
    avg_win = gross_profit / len(wins) if len(wins) else 0.0
    avg_loss = gross_loss / len(losses) if len(losses) else 0.0
    max_wins, max_losses = _streaks([v > 0 for v in net])

    curve = _equity_series(equity)
    if curve.empty:
        max_dd = max_dd_amount = 0.0
        sharpe = sortino = calmar = annual = 0.0
    else:
        dd_pct, dd_amount = _drawdowns(curve)
        max_dd = float(dd_pct.max())
        max_dd_amount = float(dd_amount.max())

        ppy = periods_per_year or infer_periods_per_year(curve.index, bt.trading_days)
        rets = curve.pct_change().replace([np.inf, -np.inf], np.nan).dropna()
        if len(rets) >= 2:
            mean = float(rets.mean())
            std = float(rets.std(ddof=0))
            downside = float(np.sqrt((np.minimum(rets.to_numpy(), 0.0) ** 2).mean()))
            scale = math.sqrt(ppy)
            sharpe = safe_ratio(mean * scale, std, sentinel)
            sortino = safe_ratio(mean * scale, downside, sentinel)
        else:
            sharpe = sortino = 0.0
        annual = _annualized_return_pct(float(initial_balance), curve)
        calmar = safe_ratio(annual, max_dd, sentinel)

    holding = float(np.mean([t.holding_hours for t in trades]))
    metrics = BacktestMetrics(
        total_trades=n,
        winning_trades=int(len(wins)),
        losing_trades=int(len(losses)),
        win_rate=win_rate,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        net_profit=net_profit,
        total_commission=float(sum(t.commission for t in trades)),
        profit_factor=safe_ratio(gross_profit, gross_loss, sentinel),
        average_win=avg_win,
        average_loss=avg_loss,
        largest_win=max(float(net.max()), 0.0),
        largest_loss=min(float(net.min()), 0.0),
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        max_drawdown=max_dd,
        max_drawdown_amount=max_dd_amount,
        recovery_factor=safe_ratio(net_profit, max_dd_amount, sentinel),
        sharpe_ratio=sharpe,
        sortino_ratio=sortino,
        calmar_ratio=calmar,
        annualized_return=annual,
        average_holding_time=holding,
        expectancy=(win_rate / 100.0) * avg_win - (1.0 - win_rate / 100.0) * avg_loss,
    )
    logger.debug(
        "[metrics] trades={} win_rate={:.2f} pf={:.3f} sharpe={:.3f} sortino={:.3f} maxDD={:.2f}%",
        n,
        win_rate,
        metrics.profit_factor,
        sharpe,
        sortino,
        max_dd,
    )
    return metrics


__all__ = [
    "infer_periods_per_year",
    "drawdown_curve",
    "monthly_returns",
    "compute_metrics",
]
