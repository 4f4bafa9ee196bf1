from __future__ import annotations

import pytest

from fxengine.agent.multi_timeframe import (
    analyze_from_base,
    analyze_multi_timeframe,
    analyze_timeframe,
)
from fxengine.core.models import (
    Alignment,
    SignalStrength,
    SignalType,
    TimeFrame,
    TrendDirection,
)
from fxengine.dal.synthetic import generate_candles


def test_monotonic_rise_is_fully_aligned_buy(make_linear):
    result = analyze_multi_timeframe(
        make_linear(300, freq="5min"),
        make_linear(300, freq="h"),
        make_linear(300, freq="D"),
    )

    assert result.overall_trend is TrendDirection.BULLISH
    assert result.overall_signal is SignalType.BUY
    assert result.alignment is Alignment.FULL
    assert result.confidence > 70
    assert result.overall_strength is SignalStrength.VERY_STRONG
    low, high = result.entry_zone
    assert low < result.short.price < high
    assert result.stop_loss < result.short.support
    assert list(result.take_profit) == sorted(result.take_profit)


def test_flat_series_reads_sideways(make_flat):
    analysis = analyze_timeframe(make_flat(300), TimeFrame.H1)

    assert analysis.trend is TrendDirection.SIDEWAYS
    assert analysis.votes == (SignalType.HOLD, SignalType.HOLD, SignalType.HOLD)
    assert analysis.strength == 0.0


def test_conflicting_trends(make_linear):
    result = analyze_multi_timeframe(
        make_linear(300, slope=0.0001),
        make_linear(300, slope=0.0),
        make_linear(300, slope=-0.0001, start_price=1.2),
    )

    assert result.alignment is Alignment.CONFLICTING
    assert {result.short.trend, result.medium.trend, result.long.trend} == set(TrendDirection)


def test_uptrend_strength_counts_price_above_averages(make_linear):
    analysis = analyze_timeframe(make_linear(300), TimeFrame.H1)

    assert analysis.strength == pytest.approx(100.0)
    assert analysis.rsi_signal is SignalType.BUY
    assert analysis.resistance >= analysis.price >= analysis.support


def test_empty_series_reads_neutral():
    analysis = analyze_timeframe([], TimeFrame.H1)

    assert analysis.timeframe is TimeFrame.H1
    assert analysis.trend is TrendDirection.SIDEWAYS
    assert analysis.strength == 0.0
    assert analysis.votes == (SignalType.HOLD, SignalType.HOLD, SignalType.HOLD)
    assert analysis.support is None
    assert analysis.resistance is None


def test_missing_timeframe_keeps_levels_from_the_rest(make_linear):
    medium = make_linear(300, freq="h")
    result = analyze_multi_timeframe([], medium, make_linear(300, freq="D"))

    assert result.short.support is None
    assert result.overall_signal is SignalType.BUY
    low, high = result.entry_zone
    assert low < result.medium.price < high
    assert result.stop_loss < result.medium.support


def test_analyze_from_base_resamples():
    base = generate_candles(TimeFrame.M5, 2000, seed=8)
    result = analyze_from_base(base, timeframes=(TimeFrame.M15, TimeFrame.H1, TimeFrame.H4))

    assert result.short.timeframe is TimeFrame.M15
    assert result.long.timeframe is TimeFrame.H4
    assert 0 <= result.confidence <= 100
