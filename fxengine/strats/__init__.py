from .params import (
    PREDEFINED_STRATEGIES,
    BacktestStrategy,
    EntryRule,
    StopLossType,
    TakeProfitType,
    get_strategy,
)
from .rules import entry_signals

__all__ = [
    "PREDEFINED_STRATEGIES",
    "BacktestStrategy",
    "EntryRule",
    "StopLossType",
    "TakeProfitType",
    "entry_signals",
    "get_strategy",
]
