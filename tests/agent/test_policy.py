from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fxengine.agent.policy import (
    RiskLimits,
    TradingState,
    check_guardrails,
    within_trading_hours,
)
from fxengine.core.exceptions import ConfigurationError


def test_trading_hours_window_is_end_exclusive():
    hours = (8, 20)
    assert within_trading_hours(datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc), hours)
    assert within_trading_hours(datetime(2024, 1, 1, 19, 59), hours)
    assert not within_trading_hours(datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc), hours)
    assert not within_trading_hours(datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc), hours)


def test_guardrails_pass_with_fresh_state(trading_time):
    assert check_guardrails(RiskLimits(), TradingState(), trading_time) is None


def test_guardrail_order(trading_time):
    limits = RiskLimits(max_open_positions=1, max_daily_trades=2, max_daily_loss=2.0)
    state = TradingState(balance=10_000, open_positions=1, trades_today=2, daily_pnl=-500)

    night = trading_time.replace(hour=22)
    assert check_guardrails(limits, state, night) == "outside_trading_hours"
    assert check_guardrails(limits, state, trading_time) == "max_daily_trades_reached"
    state.trades_today = 0
    assert check_guardrails(limits, state, trading_time) == "max_daily_loss_reached"
    state.daily_pnl = -100
    assert check_guardrails(limits, state, trading_time) == "max_open_positions_reached"
    state.open_positions = 0
    assert check_guardrails(limits, state, trading_time) is None


def test_daily_loss_is_percent_of_balance(trading_time):
    limits = RiskLimits(max_daily_loss=3.0)
    assert check_guardrails(limits, TradingState(balance=10_000, daily_pnl=-299), trading_time) is None
    assert (
        check_guardrails(limits, TradingState(balance=10_000, daily_pnl=-300), trading_time)
        == "max_daily_loss_reached"
    )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_open_positions": 0},
        {"max_daily_trades": 0},
        {"max_daily_loss": 0},
        {"trading_hours": (20, 8)},
        {"trading_hours": (0, 25)},
    ],
)
def test_invalid_limits_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        RiskLimits(**kwargs)
