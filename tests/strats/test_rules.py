from __future__ import annotations

import numpy as np
import pandas as pd

from fxengine.core.models import SignalType
from fxengine.strats.params import get_strategy
from fxengine.strats.rules import entry_signals

BUY, SELL, HOLD = SignalType.BUY, SignalType.SELL, SignalType.HOLD


def _frame(n: int, close=None) -> pd.DataFrame:
    idx = pd.date_range("2024-01-01", periods=n, freq="h")
    close = np.full(n, 1.1) if close is None else np.asarray(close, dtype=float)
    return pd.DataFrame({"open": close, "high": close, "low": close, "close": close}, index=idx)


def _run(strategy_id: str, df: pd.DataFrame, **columns) -> list:
    ind = pd.DataFrame(columns, index=df.index)
    return [SignalType(v) for v in entry_signals(df, get_strategy(strategy_id), ind)]


def test_rsi_reversal_fires_on_threshold_cross():
    df = _frame(5)
    out = _run("rsi_reversal", df, rsi=[50.0, 35.0, 25.0, 28.0, 75.0])
    assert out == [HOLD, HOLD, BUY, HOLD, SELL]


def test_rsi_reversal_ignores_warm_up():
    df = _frame(3)
    out = _run("rsi_reversal", df, rsi=[np.nan, 20.0, 80.0])
    assert out == [HOLD, HOLD, SELL]


def test_macd_crossover_follows_flag():
    df = _frame(3)
    out = _run("macd_crossover", df, macd_cross=["none", "bullish", "bearish"])
    assert out == [HOLD, BUY, SELL]


def test_trend_following_on_sma_cross():
    df = _frame(5)
    out = _run(
        "trend_following",
        df,
        sma20=[np.nan, 0.99, 1.01, 1.02, 0.98],
        sma50=[np.nan, 1.0, 1.0, 1.0, 1.0],
    )
    assert out == [HOLD, HOLD, BUY, HOLD, SELL]


def test_bollinger_bounce_needs_band_touch_and_rsi():
    df = _frame(4, close=[1.0, 0.98, 1.02, 0.98])
    out = _run(
        "bollinger_bounce",
        df,
        bb_upper=[1.01, 1.01, 1.01, 1.01],
        bb_lower=[0.99, 0.99, 0.99, 0.99],
        bb_bandwidth=[0.02, 0.02, 0.02, 0.0],
        rsi=[50.0, 35.0, 65.0, 35.0],
    )
    assert out == [HOLD, BUY, SELL, HOLD]


def test_stochastic_cross_in_zone():
    df = _frame(4)
    out = _run(
        "stochastic_divergence",
        df,
        stoch_k=[50.0, 15.0, 18.0, 85.0],
        stoch_d=[50.0, 17.0, 16.0, 84.0],
    )
    assert out == [HOLD, HOLD, BUY, HOLD]


def test_full_series_matches_prefix(h1_candles):
    strategy = get_strategy("macd_crossover")
    full = entry_signals(h1_candles, strategy)
    head = entry_signals(h1_candles.iloc[:250], strategy)

    assert [SignalType(v) for v in full.iloc[:250]] == [SignalType(v) for v in head]
