"""Seeded synthetic candle series for demos, sweeps and tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import numpy as np
import pandas as pd

from fxengine.core.models import TimeFrame

TIMEFRAME_VOLATILITY = {
    TimeFrame.M1: 0.0003,
    TimeFrame.M5: 0.0005,
    TimeFrame.M15: 0.0008,
    TimeFrame.M30: 0.0012,
    TimeFrame.H1: 0.0018,
    TimeFrame.H4: 0.0035,
    TimeFrame.D1: 0.0070,
    TimeFrame.W1: 0.0150,
}


def generate_candles(
    timeframe: TimeFrame = TimeFrame.H1,
    count: int = 500,
    *,
    start_price: float = 1.075,
    seed: Optional[int] = None,
    end: Optional[datetime] = None,
    drift_bias: float = 0.02,
) -> pd.DataFrame:
    """
    Random-walk OHLCV candles with a slow sinusoidal drift.

    Args:
        timeframe (TimeFrame): Bar spacing; also selects the per-bar volatility.
        count (int): Number of candles.
        start_price (float): Open of the first candle.
        seed (Optional[int]): Seed for ``np.random.default_rng``. Identical
            seeds yield identical frames.
        end (Optional[datetime]): Timestamp of the bar after the last one.
            Defaults to a fixed epoch so seeded output is reproducible.
        drift_bias (float): Upward skew of each random increment.

    Returns:
        pd.DataFrame: Validated candle frame indexed by timestamp.
    """
    if count <= 0:
        raise ValueError("count must be positive")
    rng = np.random.default_rng(seed)
    vol = TIMEFRAME_VOLATILITY[timeframe]
    step = pd.Timedelta(minutes=timeframe.minutes)
    end_ts = pd.Timestamp(end or datetime(2024, 1, 1, tzinfo=timezone.utc))
    index = pd.DatetimeIndex(
        [end_ts - step * (count - i) for i in range(count)], name="timestamp"
    )

    trend = np.sin(np.arange(count) / 50.0) * 0.0005
    shocks = (rng.random((count, 3)) - 0.5 + drift_bias + trend[:, None]) * vol
    change1, change2, change3 = shocks[:, 0], shocks[:, 1], shocks[:, 2]

    deltas = change1 + change2 * 0.5
    closes = start_price + np.cumsum(deltas)
    opens = np.concatenate([[start_price], closes[:-1]])
    highs = np.maximum.reduce(
        [opens, closes, opens + np.abs(change1), opens + change2, opens + change3]
    )
    lows = np.minimum.reduce(
        [opens, closes, opens - np.abs(change1), opens + change2, opens + change3]
    )
    volume = np.floor(1000 + rng.random(count) * 9000)

    return pd.DataFrame(
        {
            "open": np.round(opens, 5),
            "high": np.round(highs, 5),
            "low": np.round(lows, 5),
            "close": np.round(closes, 5),
            "volume": volume,
        },
        index=index,
    )


__all__ = ["TIMEFRAME_VOLATILITY", "generate_candles"]
