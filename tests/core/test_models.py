from __future__ import annotations

from datetime import datetime, timezone

from fxengine.core.models import (
    SignalStatus,
    SignalStrength,
    SignalType,
    TimeFrame,
    TradingSignal,
    TrendDirection,
)


def test_signal_type_directions():
    assert SignalType.BUY.direction == 1
    assert SignalType.SELL.direction == -1
    assert SignalType.HOLD.direction == 0
    assert SignalType.BUY.opposite() is SignalType.SELL
    assert SignalType.from_direction(-0.3) is SignalType.SELL
    assert SignalType.from_direction(0) is SignalType.HOLD


def test_trend_maps_to_signal():
    assert TrendDirection.BULLISH.to_signal() is SignalType.BUY
    assert TrendDirection.SIDEWAYS.to_signal() is SignalType.HOLD


def test_strength_from_confidence_thresholds():
    assert SignalStrength.from_confidence(85) is SignalStrength.VERY_STRONG
    assert SignalStrength.from_confidence(70) is SignalStrength.STRONG
    assert SignalStrength.from_confidence(60) is SignalStrength.MODERATE
    assert SignalStrength.from_confidence(10) is SignalStrength.WEAK


def test_timeframe_minutes():
    assert TimeFrame.H4.minutes == 240
    assert TimeFrame("1d") is TimeFrame.D1


def test_trading_signal_status_change_returns_copy():
    signal = TradingSignal(
        pair="EUR/USD",
        signal_type=SignalType.BUY,
        strength=SignalStrength.STRONG,
        entry_price=1.1,
        stop_loss=1.098,
        take_profit=(1.103, 1.105),
        confidence=75.0,
        reasoning=("mtf:full:buy",),
        timeframe=TimeFrame.H1,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    executed = signal.with_status(SignalStatus.EXECUTED)

    assert signal.status is SignalStatus.ACTIVE
    assert executed.status is SignalStatus.EXECUTED
    payload = executed.as_dict()
    assert payload["type"] == "buy"
    assert payload["take_profit"] == [1.103, 1.105]
    assert payload["status"] == "executed"
