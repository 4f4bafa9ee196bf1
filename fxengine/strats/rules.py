"""Vectorised entry rules for the predefined strategies.

Every rule is causal: the signal on bar ``i`` only reads indicator values up
to and including bar ``i``, so a full-series computation matches a bar-by-bar
replay.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

import numpy as np
import pandas as pd

from fxengine.core.models import SignalType
from fxengine.features.indicators import Crossover, compute_indicators, sign_with_tolerance
from fxengine.strats.params import BacktestStrategy, EntryRule

log = logging.getLogger(__name__)

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
BB_RSI_BUY = 40.0
BB_RSI_SELL = 60.0
STOCH_OVERSOLD = 20.0
STOCH_OVERBOUGHT = 80.0


def _combine(index: pd.Index, buy: pd.Series, sell: pd.Series) -> pd.Series:
    out = pd.Series(SignalType.HOLD, index=index, dtype=object)
    out[buy.fillna(False).astype(bool)] = SignalType.BUY
    out[sell.fillna(False).astype(bool)] = SignalType.SELL
    return out


def _rsi_reversal(df: pd.DataFrame, ind: pd.DataFrame) -> pd.Series:
    cur = ind["rsi"]
    prev = cur.shift(1)
    buy = (cur < RSI_OVERSOLD) & (prev >= RSI_OVERSOLD)
    sell = (cur > RSI_OVERBOUGHT) & (prev <= RSI_OVERBOUGHT)
    return _combine(df.index, buy, sell)


def _macd_crossover(df: pd.DataFrame, ind: pd.DataFrame) -> pd.Series:
    cross = ind["macd_cross"]
    return _combine(
        df.index, cross == Crossover.BULLISH.value, cross == Crossover.BEARISH.value
    )


def _bollinger_bounce(df: pd.DataFrame, ind: pd.DataFrame) -> pd.Series:
    close = df["close"].astype(float)
    # A zero-width band means no volatility to bounce off.
    wide = ind["bb_bandwidth"] > 0
    buy = wide & (close <= ind["bb_lower"]) & (ind["rsi"] < BB_RSI_BUY)
    sell = wide & (close >= ind["bb_upper"]) & (ind["rsi"] > BB_RSI_SELL)
    return _combine(df.index, buy, sell)


def _trend_following(df: pd.DataFrame, ind: pd.DataFrame) -> pd.Series:
    diff = (ind["sma20"] - ind["sma50"]).to_numpy(dtype=float)
    sign = pd.Series(
        sign_with_tolerance(diff, ind["sma50"].to_numpy(dtype=float)), index=df.index
    )
    prev = sign.shift(1)
    buy = (prev <= 0) & (sign > 0)
    sell = (prev >= 0) & (sign < 0)
    return _combine(df.index, buy, sell)


def _stochastic(df: pd.DataFrame, ind: pd.DataFrame) -> pd.Series:
    k, d = ind["stoch_k"], ind["stoch_d"]
    pk, pd_ = k.shift(1), d.shift(1)
    buy = (k < STOCH_OVERSOLD) & (pk <= pd_) & (k > d)
    sell = (k > STOCH_OVERBOUGHT) & (pk >= pd_) & (k < d)
    return _combine(df.index, buy, sell)


RULES: Dict[EntryRule, Callable[[pd.DataFrame, pd.DataFrame], pd.Series]] = {
    EntryRule.RSI_REVERSAL: _rsi_reversal,
    EntryRule.MACD_CROSSOVER: _macd_crossover,
    EntryRule.BOLLINGER_BOUNCE: _bollinger_bounce,
    EntryRule.TREND_FOLLOWING: _trend_following,
    EntryRule.STOCHASTIC: _stochastic,
}


def entry_signals(
    df: pd.DataFrame,
    strategy: BacktestStrategy,
    indicators: Optional[pd.DataFrame] = None,
) -> pd.Series:
    """
    Per-bar entry signal for ``strategy``.

    Args:
        df (pd.DataFrame): Validated candle frame.
        strategy (BacktestStrategy): Strategy whose entry rule applies.
        indicators (Optional[pd.DataFrame]): Precomputed
            :func:`~fxengine.features.indicators.compute_indicators` output.

    Returns:
        pd.Series: ``SignalType`` per bar, ``HOLD`` during warm-up.
    """
    ind = indicators if indicators is not None else compute_indicators(df)
    signals = RULES[strategy.entry_rule](df, ind)
    if log.isEnabledFor(logging.DEBUG):
        counts = signals.value_counts()
        log.debug(
            "entry rule %s: buy=%d sell=%d over %d bars",
            strategy.entry_rule.value,
            int(counts.get(SignalType.BUY, 0)),
            int(counts.get(SignalType.SELL, 0)),
            len(signals),
        )
    return signals


__all__ = ["RULES", "entry_signals"]
