from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Tuple

from fxengine.core.exceptions import ConfigurationError
from fxengine.core.models import TimeFrame


class StopLossType(str, Enum):
    FIXED = "fixed"  # value in pips
    ATR = "atr"  # value x ATR
    PERCENTAGE = "percentage"  # value % of entry close


class TakeProfitType(str, Enum):
    FIXED = "fixed"
    ATR = "atr"
    PERCENTAGE = "percentage"
    RISK_REWARD = "risk_reward"  # value x stop distance


class EntryRule(str, Enum):
    RSI_REVERSAL = "rsi_reversal"
    MACD_CROSSOVER = "macd_crossover"
    BOLLINGER_BOUNCE = "bollinger_bounce"
    TREND_FOLLOWING = "trend_following"
    STOCHASTIC = "stochastic"


@dataclass(frozen=True)
class BacktestStrategy:
    id: str
    name: str
    entry_rule: EntryRule
    indicators: Tuple[str, ...] = ()
    # Exits
    stop_loss_type: StopLossType = StopLossType.ATR
    stop_loss_value: float = 2.0
    take_profit_type: TakeProfitType = TakeProfitType.RISK_REWARD
    take_profit_value: float = 2.0
    # Sizing
    risk_per_trade: float = 1.0  # % of balance lost at the stop
    max_open_positions: int = 1
    timeframes: Tuple[TimeFrame, ...] = (TimeFrame.H1,)
    description: str = ""

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "entry_rule", EntryRule(self.entry_rule))
            object.__setattr__(self, "stop_loss_type", StopLossType(self.stop_loss_type))
            object.__setattr__(
                self, "take_profit_type", TakeProfitType(self.take_profit_type)
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if self.max_open_positions <= 0:
            raise ConfigurationError(
                f"max_open_positions must be > 0 (got {self.max_open_positions})"
            )
        if not self.risk_per_trade > 0:
            raise ConfigurationError(f"risk_per_trade must be > 0 (got {self.risk_per_trade})")
        if not self.stop_loss_value > 0:
            raise ConfigurationError(f"stop_loss_value must be > 0 (got {self.stop_loss_value})")
        if not self.take_profit_value > 0:
            raise ConfigurationError(
                f"take_profit_value must be > 0 (got {self.take_profit_value})"
            )

    def with_params(self, **changes: Any) -> "BacktestStrategy":
        """Copy with overrides; the copy is validated again."""
        return replace(self, **changes)


PREDEFINED_STRATEGIES: Dict[str, BacktestStrategy] = {
    s.id: s
    for s in (
        BacktestStrategy(
            id="rsi_reversal",
            name="RSI Reversal",
            entry_rule=EntryRule.RSI_REVERSAL,
            indicators=("RSI",),
            stop_loss_type=StopLossType.ATR,
            stop_loss_value=2.0,
            take_profit_type=TakeProfitType.RISK_REWARD,
            take_profit_value=2.0,
            risk_per_trade=1.0,
            max_open_positions=1,
            timeframes=(TimeFrame.H1, TimeFrame.H4),
            description="Buy when RSI crosses below 30, sell when it crosses above 70",
        ),
        BacktestStrategy(
            id="macd_crossover",
            name="MACD Crossover",
            entry_rule=EntryRule.MACD_CROSSOVER,
            indicators=("MACD",),
            stop_loss_type=StopLossType.ATR,
            stop_loss_value=1.5,
            take_profit_type=TakeProfitType.RISK_REWARD,
            take_profit_value=2.5,
            risk_per_trade=1.5,
            max_open_positions=1,
            timeframes=(TimeFrame.H1, TimeFrame.H4, TimeFrame.D1),
            description="Enter on MACD/signal line crossovers",
        ),
        BacktestStrategy(
            id="bollinger_bounce",
            name="Bollinger Bounce",
            entry_rule=EntryRule.BOLLINGER_BOUNCE,
            indicators=("Bollinger Bands", "RSI"),
            stop_loss_type=StopLossType.PERCENTAGE,
            stop_loss_value=0.5,
            take_profit_type=TakeProfitType.FIXED,
            take_profit_value=30.0,
            risk_per_trade=1.0,
            max_open_positions=2,
            timeframes=(TimeFrame.M15, TimeFrame.H1),
            description="Buy at the lower band with RSI < 40, sell at the upper band with RSI > 60",
        ),
        BacktestStrategy(
            id="trend_following",
            name="Trend Following MA",
            entry_rule=EntryRule.TREND_FOLLOWING,
            indicators=("SMA 20", "SMA 50", "ATR"),
            stop_loss_type=StopLossType.ATR,
            stop_loss_value=2.0,
            take_profit_type=TakeProfitType.ATR,
            take_profit_value=4.0,
            risk_per_trade=2.0,
            max_open_positions=1,
            timeframes=(TimeFrame.H4, TimeFrame.D1),
            description="Follow SMA 20/50 crossovers",
        ),
        BacktestStrategy(
            id="stochastic_divergence",
            name="Stochastic Oversold/Overbought",
            entry_rule=EntryRule.STOCHASTIC,
            indicators=("Stochastic", "ATR"),
            stop_loss_type=StopLossType.ATR,
            stop_loss_value=1.5,
            take_profit_type=TakeProfitType.RISK_REWARD,
            take_profit_value=2.0,
            risk_per_trade=1.0,
            max_open_positions=1,
            timeframes=(TimeFrame.M30, TimeFrame.H1),
            description="Enter when %K crosses %D inside the oversold/overbought zones",
        ),
    )
}


def get_strategy(strategy_id: str) -> BacktestStrategy:
    try:
        return PREDEFINED_STRATEGIES[strategy_id]
    except KeyError as exc:
        known = ", ".join(sorted(PREDEFINED_STRATEGIES))
        raise ConfigurationError(
            f"unknown strategy '{strategy_id}' (known: {known})"
        ) from exc


__all__ = [
    "StopLossType",
    "TakeProfitType",
    "EntryRule",
    "BacktestStrategy",
    "PREDEFINED_STRATEGIES",
    "get_strategy",
]
