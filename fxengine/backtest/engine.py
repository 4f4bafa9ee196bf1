from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Tuple

import pandas as pd
from loguru import logger

from fxengine.agent.sizing import lot_size
from fxengine.backtest.metrics import (
    compute_metrics,
    drawdown_curve,
    infer_periods_per_year,
    monthly_returns,
)
from fxengine.backtest.types import (
    BacktestConfig,
    BacktestResult,
    BacktestTrade,
    EquityPoint,
    ExitReason,
    PositionSide,
    RunStatus,
)
from fxengine.core.exceptions import ConfigurationError
from fxengine.core.models import SignalType
from fxengine.dal.schemas import CandleInput, ensure_candle_frame
from fxengine.features.indicators import compute_indicators
from fxengine.settings import get_backtest_settings
from fxengine.strats.params import BacktestStrategy, StopLossType, TakeProfitType
from fxengine.strats.rules import entry_signals

ProgressCallback = Callable[[float], None]


class CancelFlag(Protocol):
    def is_set(self) -> bool: ...


@dataclass(slots=True)
class _Position:
    side: PositionSide
    entry_index: int
    entry_time: pd.Timestamp
    entry_price: float
    lot_size: float
    stop_loss: float
    take_profit: float
    commission_open: float

    def unrealized(self, price: float, contract_size: float) -> float:
        return (price - self.entry_price) * self.side.direction * self.lot_size * contract_size


def _as_index_ts(value, index: pd.DatetimeIndex) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if index.tz is not None and ts.tzinfo is None:
        return ts.tz_localize(index.tz)
    if index.tz is None and ts.tzinfo is not None:
        return ts.tz_convert("UTC").tz_localize(None)
    return ts


def _window(df: pd.DataFrame, config: BacktestConfig) -> Tuple[int, int]:
    """Positional ``[first, last]`` bars inside the configured dates."""
    mask = pd.Series(True, index=df.index)
    if config.start is not None:
        mask &= df.index >= _as_index_ts(config.start, df.index)
    if config.end is not None:
        mask &= df.index <= _as_index_ts(config.end, df.index)
    positions = mask.to_numpy().nonzero()[0]
    if len(positions) == 0:
        raise ConfigurationError(
            f"no candles between start={config.start} and end={config.end}"
        )
    return int(positions[0]), int(positions[-1])


def _distances(
    strategy: BacktestStrategy, close: float, atr: float, pip_size: float
) -> Tuple[float, float]:
    """Stop and target distances from the entry bar's close, in price units."""
    if strategy.stop_loss_type is StopLossType.ATR:
        stop = atr * strategy.stop_loss_value
    elif strategy.stop_loss_type is StopLossType.PERCENTAGE:
        stop = close * strategy.stop_loss_value / 100.0
    else:
        stop = strategy.stop_loss_value * pip_size

    if strategy.take_profit_type is TakeProfitType.ATR:
        target = atr * strategy.take_profit_value
    elif strategy.take_profit_type is TakeProfitType.PERCENTAGE:
        target = close * strategy.take_profit_value / 100.0
    elif strategy.take_profit_type is TakeProfitType.RISK_REWARD:
        target = stop * strategy.take_profit_value
    else:
        target = strategy.take_profit_value * pip_size
    return stop, target


def _exit_fill(
    pos: _Position, open_: float, high: float, low: float, slippage: float
) -> Optional[Tuple[float, ExitReason]]:
    """
    Intrabar stop/target check; the stop wins when both are inside the bar.

    A bar that opens beyond a level fills at its open, so a gap through the
    stop costs more than the stop and a gap through the target pays more.
    """
    d = pos.side.direction
    if pos.side is PositionSide.LONG:
        stop_hit = low <= pos.stop_loss
        target_hit = high >= pos.take_profit
        stop_fill = min(pos.stop_loss, open_)
        target_fill = max(pos.take_profit, open_)
    else:
        stop_hit = high >= pos.stop_loss
        target_hit = low <= pos.take_profit
        stop_fill = max(pos.stop_loss, open_)
        target_fill = min(pos.take_profit, open_)
    if stop_hit:
        return stop_fill - d * slippage, ExitReason.STOP_LOSS
    if target_hit:
        return target_fill - d * slippage, ExitReason.TAKE_PROFIT
    return None


def run_backtest(
    candles: CandleInput,
    config: BacktestConfig,
    *,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelFlag] = None,
) -> BacktestResult:
    """
    Replay ``candles`` bar by bar under ``config``.

    Indicators and entry signals are computed once on the full series (every
    rule is causal), then the ``[start, end]`` window is simulated:

    1. open positions are checked against the bar's high/low, stop first,
       filling at the open when the bar gapped through a level;
    2. a cancellation request closes everything at this bar's close;
    3. a new position may open on the bar's signal while fewer than
       ``max_open_positions`` are open, never on the first or last bar of
       the window;
    4. one equity point is appended (balance plus unrealized pnl at close).

    Positions still open after the last bar close at its close with reason
    ``end_of_data``.

    Args:
        candles (CandleInput): Ordered candles; validated on ingestion.
        config (BacktestConfig): Strategy, window and cost model.
        progress (Optional[ProgressCallback]): Receives percent complete at
            the ``FX_PROGRESS_STEP_PCT`` cadence and 100 at the end.
        cancel (Optional[CancelFlag]): Checked once per bar.

    Returns:
        BacktestResult: ``RunStatus.CANCELLED`` when stopped early, with the
        equity curve covering the processed bars only.

    Raises:
        ConfigurationError: When the window selects no candles.
        DataValidationError: When the candle series fails ingestion checks.
    """
    df = ensure_candle_frame(candles)
    strategy = config.strategy
    bt = get_backtest_settings()

    if df.empty:
        logger.info("[backtest] strategy={} no candles; nothing to simulate", strategy.id)
        return _finalize(config, [], [], config.initial_balance, RunStatus.COMPLETED, df.index)

    try:
        first, last = _window(df, config)
    except ConfigurationError as exc:
        logger.warning("[backtest] rejected config strategy={}: {}", strategy.id, exc)
        raise

    indicators = compute_indicators(df)
    signals = entry_signals(df, strategy, indicators).to_numpy()
    atr_values = indicators["atr"].to_numpy(dtype=float)
    index = df.index
    open_ = df["open"].to_numpy(dtype=float)
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    close = df["close"].to_numpy(dtype=float)

    total = last - first + 1
    step = max(1, int(math.ceil(total * bt.progress_step_pct / 100.0)))
    cost = config.spread + config.slippage
    contract = config.contract_size

    logger.info(
        "[backtest] start strategy={} bars={} window=[{} .. {}] balance={}",
        strategy.id,
        total,
        index[first],
        index[last],
        config.initial_balance,
    )

    balance = float(config.initial_balance)
    open_positions: List[_Position] = []
    trades: List[BacktestTrade] = []
    equity: List[EquityPoint] = []
    status = RunStatus.COMPLETED

    def _close(pos: _Position, i: int, price: float, reason: ExitReason) -> None:
        nonlocal balance
        commission_close = config.commission * pos.lot_size
        pnl = pos.unrealized(price, contract)
        balance_before = balance
        balance += pnl - commission_close
        commission = pos.commission_open + commission_close
        trades.append(
            BacktestTrade(
                trade_id=len(trades) + 1,
                side=pos.side,
                entry_index=pos.entry_index,
                exit_index=i,
                entry_time=pos.entry_time.to_pydatetime(),
                exit_time=index[i].to_pydatetime(),
                entry_price=pos.entry_price,
                exit_price=price,
                lot_size=pos.lot_size,
                stop_loss=pos.stop_loss,
                take_profit=pos.take_profit,
                pnl=pnl,
                commission=commission,
                reason=reason,
                pnl_percent=(pnl - commission) / balance_before * 100.0 if balance_before > 0 else 0.0,
            )
        )

    for i in range(first, last + 1):
        # 1. stops and targets
        still_open: List[_Position] = []
        for pos in open_positions:
            fill = _exit_fill(pos, open_[i], high[i], low[i], config.slippage)
            if fill is None:
                still_open.append(pos)
            else:
                _close(pos, i, fill[0], fill[1])
        open_positions = still_open

        # 2. cooperative cancellation
        if cancel is not None and cancel.is_set():
            for pos in open_positions:
                _close(pos, i, close[i] - pos.side.direction * config.slippage, ExitReason.CANCELLED)
            open_positions = []
            equity.append(EquityPoint(i, index[i].to_pydatetime(), balance, balance, 0))
            status = RunStatus.CANCELLED
            logger.info(
                "[backtest] cancelled strategy={} at bar={} ({}/{})",
                strategy.id,
                i,
                i - first + 1,
                total,
            )
            break

        # 3. entries
        signal = SignalType(signals[i])
        if (
            first < i < last
            and signal is not SignalType.HOLD
            and len(open_positions) < strategy.max_open_positions
        ):
            pos = _open_position(
                i, index[i], signal, close[i], atr_values[i], balance, config, cost
            )
            if pos is not None:
                balance -= pos.commission_open
                open_positions.append(pos)

        # end of data
        if i == last:
            for pos in open_positions:
                _close(pos, i, close[i] - pos.side.direction * config.slippage, ExitReason.END_OF_DATA)
            open_positions = []

        # 4. equity point
        unrealized = sum(p.unrealized(close[i], contract) for p in open_positions)
        equity.append(
            EquityPoint(
                index=i,
                timestamp=index[i].to_pydatetime(),
                equity=balance + unrealized,
                balance=balance,
                open_positions=len(open_positions),
            )
        )

        done = i - first + 1
        if progress is not None and (done % step == 0 or done == total):
            progress(done / total * 100.0)

    result = _finalize(config, trades, equity, balance, status, df.index[first : last + 1])
    logger.info(
        "[backtest] finished strategy={} status={} trades={} final_balance={:.2f} return={:.2f}%",
        strategy.id,
        status.value,
        len(trades),
        result.final_balance,
        result.total_return_percent,
    )
    return result


def _open_position(
    i: int,
    timestamp: pd.Timestamp,
    signal: SignalType,
    close: float,
    atr: float,
    balance: float,
    config: BacktestConfig,
    cost: float,
) -> Optional[_Position]:
    strategy = config.strategy
    needs_atr = (
        strategy.stop_loss_type is StopLossType.ATR
        or strategy.take_profit_type is TakeProfitType.ATR
    )
    if needs_atr and not (atr > 0):
        return None
    stop_distance, target_distance = _distances(strategy, close, atr, config.pip_size)
    if not stop_distance > 0 or not target_distance > 0:
        return None

    side = PositionSide.LONG if signal is SignalType.BUY else PositionSide.SHORT
    d = side.direction
    entry_price = close + d * cost
    lots = lot_size(
        balance,
        strategy.risk_per_trade,
        stop_distance,
        price=entry_price,
        leverage=config.leverage,
        contract_size=config.contract_size,
    )
    if lots <= 0:
        logger.debug("[backtest] bar={} sizing returned no lots; entry skipped", i)
        return None
    return _Position(
        side=side,
        entry_index=i,
        entry_time=timestamp,
        entry_price=entry_price,
        lot_size=lots,
        stop_loss=close - d * stop_distance,
        take_profit=close + d * target_distance,
        commission_open=config.commission * lots,
    )


def _finalize(
    config: BacktestConfig,
    trades: List[BacktestTrade],
    equity: List[EquityPoint],
    balance: float,
    status: RunStatus,
    index: pd.DatetimeIndex,
) -> BacktestResult:
    initial = float(config.initial_balance)
    metrics = compute_metrics(
        trades,
        equity,
        initial,
        infer_periods_per_year(index),
    )
    total_return = balance - initial
    return BacktestResult(
        status=status,
        config=config,
        trades=tuple(trades),
        equity_curve=tuple(equity),
        drawdown_curve=tuple(drawdown_curve(equity)),
        monthly_returns=monthly_returns(trades),
        metrics=metrics,
        final_balance=balance,
        total_return=total_return,
        total_return_percent=total_return / initial * 100.0,
        bars_processed=len(equity),
    )


__all__ = ["ProgressCallback", "CancelFlag", "run_backtest"]
