from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from fxengine.core.exceptions import ConfigurationError
from fxengine.settings import get_market_settings
from fxengine.strats.params import BacktestStrategy


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def direction(self) -> int:
        return 1 if self is PositionSide.LONG else -1


class ExitReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    END_OF_DATA = "end_of_data"
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BacktestConfig:
    """
    One backtest run.

    Attributes:
        strategy (BacktestStrategy): Entry rule, exits and sizing.
        start, end (Optional[datetime]): Inclusive simulation window; the
            whole series when omitted. Bars before ``start`` still feed
            indicator warm-up.
        initial_balance (float): Starting balance in account currency.
        leverage (float): Caps position notional at ``balance * leverage``.
        commission (float): Account currency per lot, charged on open and
            on close.
        spread (float): Price units added to long entries and subtracted
            from short entries.
        slippage (float): Adverse price offset on every fill.
    """

    strategy: BacktestStrategy
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    initial_balance: float = 10_000.0
    leverage: float = 100.0
    commission: float = 0.0
    spread: float = field(default_factory=lambda: get_market_settings().default_spread)
    slippage: float = 0.0
    pip_size: float = field(default_factory=lambda: get_market_settings().pip_size)
    contract_size: float = field(default_factory=lambda: get_market_settings().contract_size)
    pair: str = "EUR/USD"

    def __post_init__(self) -> None:
        if not isinstance(self.strategy, BacktestStrategy):
            raise ConfigurationError("strategy must be a BacktestStrategy")
        if not self.initial_balance > 0:
            raise ConfigurationError(f"initial_balance must be > 0 (got {self.initial_balance})")
        if not self.leverage > 0:
            raise ConfigurationError(f"leverage must be > 0 (got {self.leverage})")
        for name in ("commission", "spread", "slippage"):
            value = getattr(self, name)
            if not value >= 0:
                raise ConfigurationError(f"{name} must be >= 0 (got {value})")
        if not self.pip_size > 0 or not self.contract_size > 0:
            raise ConfigurationError("pip_size and contract_size must be > 0")
        if self.start is not None and self.end is not None:
            if pd.Timestamp(self.start) > pd.Timestamp(self.end):
                raise ConfigurationError("start must not be after end")


@dataclass(frozen=True)
class BacktestTrade:
    trade_id: int
    side: PositionSide
    entry_index: int
    exit_index: int
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    lot_size: float
    stop_loss: float
    take_profit: float
    pnl: float
    commission: float
    reason: ExitReason
    pnl_percent: float = 0.0

    @property
    def net_pnl(self) -> float:
        return self.pnl - self.commission

    @property
    def is_win(self) -> bool:
        return self.net_pnl > 0

    @property
    def holding_hours(self) -> float:
        return (pd.Timestamp(self.exit_time) - pd.Timestamp(self.entry_time)).total_seconds() / 3600.0

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["side"] = self.side.value
        out["reason"] = self.reason.value
        out["net_pnl"] = self.net_pnl
        return out


@dataclass(frozen=True)
class EquityPoint:
    index: int
    timestamp: datetime
    equity: float
    balance: float
    open_positions: int = 0


@dataclass(frozen=True)
class BacktestMetrics:
    """Ledger and equity statistics; every field is 0 for an empty ledger.

    Ratios whose denominator is zero follow ``safe_ratio``: 0 unless the
    numerator is positive, in which case they read ``FX_RATIO_SENTINEL``.
    """

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    net_profit: float = 0.0
    total_commission: float = 0.0
    profit_factor: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    max_drawdown: float = 0.0  # percent of peak equity
    max_drawdown_amount: float = 0.0
    recovery_factor: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    annualized_return: float = 0.0  # percent
    average_holding_time: float = 0.0  # hours
    expectancy: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BacktestResult:
    status: RunStatus
    config: BacktestConfig
    trades: Tuple[BacktestTrade, ...]
    equity_curve: Tuple[EquityPoint, ...]
    drawdown_curve: Tuple[Tuple[datetime, float], ...]
    monthly_returns: Dict[str, float]
    metrics: BacktestMetrics
    final_balance: float
    total_return: float
    total_return_percent: float
    bars_processed: int = 0

    @property
    def cancelled(self) -> bool:
        return self.status is RunStatus.CANCELLED

    def equity_frame(self) -> pd.DataFrame:
        """Equity curve as a frame indexed by timestamp."""
        frame = pd.DataFrame(
            {
                "equity": [p.equity for p in self.equity_curve],
                "balance": [p.balance for p in self.equity_curve],
                "open_positions": [p.open_positions for p in self.equity_curve],
            },
            index=pd.DatetimeIndex([p.timestamp for p in self.equity_curve], name="timestamp"),
        )
        return frame

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([t.as_dict() for t in self.trades])

    def summary(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "strategy": self.config.strategy.id,
            "bars": self.bars_processed,
            "final_balance": self.final_balance,
            "total_return": self.total_return,
            "total_return_percent": self.total_return_percent,
            "metrics": self.metrics.as_dict(),
            "monthly_returns": dict(self.monthly_returns),
        }


__all__ = [
    "PositionSide",
    "ExitReason",
    "RunStatus",
    "BacktestConfig",
    "BacktestTrade",
    "EquityPoint",
    "BacktestMetrics",
    "BacktestResult",
]
