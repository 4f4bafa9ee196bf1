from __future__ import annotations

import numpy as np
import pandas as pd

WINDOW = 20

FEATURE_NAMES = (
    "Returns",
    "Volatility",
    "Momentum",
    "RSI",
    "MA Cross 5/10",
    "MA Cross 10/20",
    "Price/SMA5",
    "Price/SMA20",
    "Body Size",
    "Upper Wick",
    "Lower Wick",
    "Is Bullish",
    "Volume Change",
)


def _window_rsi(close: pd.Series, window: int) -> pd.Series:
    """RSI/100 over the ``window - 1`` changes inside the trailing window."""
    delta = close.diff()
    gains = delta.clip(lower=0.0).rolling(window - 1, min_periods=window - 1).sum()
    losses = (-delta.clip(upper=0.0)).rolling(window - 1, min_periods=window - 1).sum()
    rs = gains / losses.where(losses > 0)
    out = 1.0 - 1.0 / (1.0 + rs)
    no_loss = losses.notna() & (losses <= 0)
    out = out.mask(no_loss & (gains > 0), 1.0).mask(no_loss & (gains <= 0), 0.5)
    return out.shift(1)


def extract_features(df: pd.DataFrame, window: int = WINDOW) -> pd.DataFrame:
    """
    Build the 13-column feature matrix.

    Row ``i`` describes bar ``i`` against the ``window`` bars before it, so
    the frame starts at bar ``window``. Columns follow ``FEATURE_NAMES``.
    """
    close = df["close"].astype(float)
    open_ = df["open"].astype(float)
    high = df["high"].astype(float)
    low = df["low"].astype(float)
    volume = df["volume"].astype(float) if "volume" in df.columns else pd.Series(0.0, index=df.index)

    sma5 = close.rolling(5).mean().shift(1)
    sma10 = close.rolling(10).mean().shift(1)
    sma20 = close.rolling(window).mean().shift(1)
    prev_volume = volume.shift(1)

    feats = pd.DataFrame(
        {
            "Returns": close / close.shift(window) - 1.0,
            "Volatility": close.pct_change().rolling(window - 1).std(ddof=0).shift(1),
            "Momentum": close / close.shift(window // 2) - 1.0,
            "RSI": _window_rsi(close, window),
            "MA Cross 5/10": (sma5 - sma10) / sma10,
            "MA Cross 10/20": (sma10 - sma20) / sma20,
            "Price/SMA5": (close - sma5) / sma5,
            "Price/SMA20": (close - sma20) / sma20,
            "Body Size": (close - open_).abs() / open_,
            "Upper Wick": (high - np.maximum(open_, close)) / high,
            "Lower Wick": (np.minimum(open_, close) - low) / low,
            "Is Bullish": (close > open_).astype(float),
            "Volume Change": (volume - prev_volume) / prev_volume.where(prev_volume != 0, 1.0),
        },
        index=df.index,
    )
    return feats.iloc[window:]


def forward_returns(df: pd.DataFrame, horizon: int) -> pd.Series:
    """Return from each bar's close to the close ``horizon`` bars later."""
    close = df["close"].astype(float)
    return close.shift(-horizon) / close - 1.0


__all__ = ["WINDOW", "FEATURE_NAMES", "extract_features", "forward_returns"]
