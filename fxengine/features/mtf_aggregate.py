from __future__ import annotations

import logging
from typing import Dict, Iterable

import pandas as pd

from fxengine.core.models import TimeFrame
from fxengine.dal.schemas import CandleInput, ensure_candle_frame

log = logging.getLogger(__name__)

_AGG = {
    "open": "first",
    "high": "max",
    "low": "min",
    "close": "last",
    "volume": "sum",
}


def aggregate_ohlcv(
    candles: CandleInput,
    timeframe: TimeFrame,
    *,
    label: str = "left",
    closed: str = "left",
) -> pd.DataFrame:
    """
    Aggregates candles to a coarser timeframe.

    Args:
        candles (CandleInput): Base candles (records or frame).
        timeframe (TimeFrame): Target timeframe.
        label (str): Which bin edge labels the output bar.
        closed (str): Which bin edge is inclusive.

    Returns:
        pd.DataFrame: Candle frame at the target timeframe; empty bins dropped.
    """
    df = ensure_candle_frame(candles)
    res = df.resample(timeframe.pandas_rule, label=label, closed=closed).agg(_AGG)
    res = res.dropna(subset=["open", "high", "low", "close"], how="any")
    res.index.name = "timestamp"
    return res


def mtf_aggregate(
    candles: CandleInput,
    timeframes: Iterable[TimeFrame] = (TimeFrame.M5, TimeFrame.H1, TimeFrame.D1),
) -> Dict[TimeFrame, pd.DataFrame]:
    """
    Aggregates one base series into several timeframes.

    Args:
        candles (CandleInput): Base candles, at or below the finest target.
        timeframes (Iterable[TimeFrame]): Targets.

    Returns:
        Dict[TimeFrame, pd.DataFrame]: One frame per requested timeframe.
    """
    df = ensure_candle_frame(candles)
    out: Dict[TimeFrame, pd.DataFrame] = {}
    for tf in timeframes:
        out[tf] = aggregate_ohlcv(df, tf)
        log.debug("mtf_aggregate: %s -> %d bars", tf.value, len(out[tf]))
    return out


__all__ = ["aggregate_ohlcv", "mtf_aggregate"]
