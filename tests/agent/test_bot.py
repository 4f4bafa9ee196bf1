from __future__ import annotations

import pytest

from fxengine.agent.bot import BOT_PRESETS, BotConfig, TradingBot
from fxengine.agent.decision import INSUFFICIENT_DATA, DecisionInputs
from fxengine.core.exceptions import ConfigurationError
from fxengine.core.models import SignalType, TrendDirection
from fxengine.orchestration.scheduler import ManualClock
from fxengine.settings import get_backtest_settings


@pytest.fixture
def strong_buy(make_snapshot, make_pattern, make_prediction):
    return DecisionInputs(
        snapshot=make_snapshot(),
        patterns=(make_pattern(SignalType.BUY),),
        prediction=make_prediction(TrendDirection.BULLISH),
    )


@pytest.fixture
def bot(trading_time):
    return TradingBot(BotConfig.from_preset("swing"), now_fn=lambda: trading_time)


def test_presets():
    conservative = BotConfig.from_preset("conservative")
    assert conservative.min_confidence == 80.0
    assert conservative.use_ml_prediction is False
    assert set(BOT_PRESETS) == {"conservative", "moderate", "aggressive", "scalping", "swing"}
    assert BotConfig.from_preset("moderate", pair="GBP/USD").pair == "GBP/USD"
    with pytest.raises(ConfigurationError):
        BotConfig.from_preset("yolo")


@pytest.mark.parametrize(
    "override", [{"risk_per_trade": 0}, {"min_confidence": 120}, {"max_positions": 0}]
)
def test_invalid_config_rejected(override):
    with pytest.raises(ConfigurationError):
        BotConfig(**override)


def test_evaluate_emits_signal_and_counts_trade(bot, strong_buy):
    received = []
    bot.on_signal(received.append)

    decision = bot.evaluate(strong_buy)

    assert decision.actionable
    assert received == [decision.trading_signal]
    assert bot.signals == [decision.trading_signal]
    assert bot.state.trades_today == 1
    assert bot.logs[0].level == "trade"
    assert bot.last_check is not None


def test_daily_trade_limit_blocks(bot, strong_buy):
    # swing preset allows two trades per day
    bot.evaluate(strong_buy)
    bot.evaluate(strong_buy)
    decision = bot.evaluate(strong_buy)

    assert decision.blocked_reason == "max_daily_trades_reached"
    assert len(bot.signals) == 2

    bot.reset_daily_counters()
    assert bot.evaluate(strong_buy).actionable


def test_daily_loss_blocks(bot, strong_buy):
    bot.position_opened()
    bot.record_trade_result(-400.0)

    assert bot.state.balance == pytest.approx(9_600.0)
    assert bot.state.open_positions == 0
    assert bot.evaluate(strong_buy).blocked_reason == "max_daily_loss_reached"


def test_performance_tally(bot):
    for pnl in (100.0, -50.0, 200.0):
        bot.record_trade_result(pnl)

    perf = bot.performance
    assert perf.total_trades == 3
    assert perf.win_rate == pytest.approx(200 / 3)
    assert perf.average_win == pytest.approx(150.0)
    assert perf.average_loss == pytest.approx(50.0)
    assert perf.profit_factor == pytest.approx(6.0)


def test_all_winning_record_reads_sentinel_profit_factor(bot):
    for pnl in (100.0, 40.0):
        bot.record_trade_result(pnl)

    assert bot.performance.losing_trades == 0
    assert bot.performance.profit_factor == get_backtest_settings().ratio_sentinel


def test_evaluate_without_candles_holds(bot):
    decision = bot.evaluate(DecisionInputs(snapshot=None))

    assert decision.reasons == (INSUFFICIENT_DATA,)
    assert not decision.actionable
    assert bot.state.trades_today == 0
    assert bot.signals == []


def test_update_config_applies_new_limits(bot, strong_buy):
    bot.update_config(min_confidence=90.0)

    decision = bot.evaluate(strong_buy)

    assert decision.signal_type is SignalType.BUY
    assert not decision.actionable


def test_logs_are_bounded_and_newest_first(bot):
    for i in range(150):
        bot._log("info", f"message {i}")

    assert len(bot.logs) == 100
    assert bot.logs[0].message == "message 149"


def test_start_and_stop_with_manual_clock(bot, strong_buy):
    clock = ManualClock()
    calls = []

    def provider():
        calls.append(clock.now())
        return strong_buy

    task = bot.start(provider, clock)
    assert bot.is_running
    assert calls == [0.0]

    clock.advance(bot.config.interval_seconds - 1)
    assert task.run_pending() is False
    clock.advance(1)
    assert task.run_pending() is True
    assert len(calls) == 2

    bot.stop()
    assert not bot.is_running
    clock.advance(bot.config.interval_seconds)
    assert task.run_pending() is False
    assert len(calls) == 2
