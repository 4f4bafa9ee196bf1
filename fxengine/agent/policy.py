"""
Trading guardrails, evaluated before any signal fusion runs.

Limits are plain data; the mutable counters they are checked against live in
:class:`TradingState`, owned by whoever drives the evaluation loop (usually
:class:`fxengine.agent.bot.TradingBot`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from fxengine.core.exceptions import ConfigurationError

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskLimits:
    """
    Risk limits with sane defaults.

    Attributes:
        max_open_positions (int): Open positions allowed at once.
        max_daily_trades (int): Signals allowed per trading day.
        max_daily_loss (float): Daily loss limit in percent of balance.
        trading_hours (Tuple[int, int]): UTC hour window ``[start, end)``.
    """

    max_open_positions: int = 2
    max_daily_trades: int = 5
    max_daily_loss: float = 3.0
    trading_hours: Tuple[int, int] = (8, 20)

    def __post_init__(self) -> None:
        if self.max_open_positions <= 0:
            raise ConfigurationError("max_open_positions must be > 0")
        if self.max_daily_trades <= 0:
            raise ConfigurationError("max_daily_trades must be > 0")
        if self.max_daily_loss <= 0:
            raise ConfigurationError("max_daily_loss must be > 0")
        start, end = self.trading_hours
        if not (0 <= start <= 23 and 0 < end <= 24 and start < end):
            raise ConfigurationError(f"invalid trading_hours {self.trading_hours}")


DEFAULT = RiskLimits()


@dataclass
class TradingState:
    """Counters the guardrails read; reset daily by the owner."""

    balance: float = 10_000.0
    open_positions: int = 0
    trades_today: int = 0
    daily_pnl: float = 0.0


# -----------------------------------------------------------------------------
# Checks
# -----------------------------------------------------------------------------


def within_trading_hours(now: datetime, hours: Tuple[int, int]) -> bool:
    """
    Checks whether ``now`` falls inside the UTC hour window.

    Args:
        now (datetime): Naive values are taken as UTC.
        hours (Tuple[int, int]): ``(start, end)`` hours, end exclusive.

    Returns:
        bool: True inside the window.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    hour = now.astimezone(timezone.utc).hour
    start, end = hours
    return start <= hour < end


def daily_loss_breached(state: TradingState, limits: RiskLimits) -> bool:
    return state.daily_pnl <= -(limits.max_daily_loss / 100.0) * state.balance


def check_guardrails(
    limits: RiskLimits,
    state: TradingState,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Returns the first violated limit, or None when trading may proceed.

    Order: trading hours, daily trade count, daily loss, open positions.
    """
    moment = now or datetime.now(timezone.utc)
    if not within_trading_hours(moment, limits.trading_hours):
        return "outside_trading_hours"
    if state.trades_today >= limits.max_daily_trades:
        return "max_daily_trades_reached"
    if daily_loss_breached(state, limits):
        return "max_daily_loss_reached"
    if state.open_positions >= limits.max_open_positions:
        return "max_open_positions_reached"
    return None


__all__ = [
    "RiskLimits",
    "DEFAULT",
    "TradingState",
    "within_trading_hours",
    "daily_loss_breached",
    "check_guardrails",
]
