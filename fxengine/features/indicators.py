"""
Feature engineering: technical indicators.

Vectorized indicator calculations built on pandas. Every per-bar function
returns values aligned index-for-index with its input and leaves warm-up
bars as NaN, so callers can tell "not yet computable" from zero. Nothing
here keeps state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from fxengine.core.models import SignalType, TrendDirection, Volatility
from fxengine.settings import get_market_settings

log = logging.getLogger(__name__)

# Relative tolerance for price comparisons; far below one pip.
REL_TOL = 1e-10

FIB_RATIOS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)


class Crossover(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NONE = "none"


def _close_series(data: pd.Series | pd.DataFrame) -> pd.Series:
    if isinstance(data, pd.DataFrame):
        data = data["close"]
    return pd.Series(data).astype(float)


def _check_period(period: int) -> None:
    if int(period) <= 0:
        raise ValueError(f"period must be positive, got {period}")


def sign_with_tolerance(diff: np.ndarray, scale: np.ndarray) -> np.ndarray:
    tol = REL_TOL * np.abs(scale)
    out = np.zeros(len(diff), dtype=float)
    out[diff > tol] = 1.0
    out[diff < -tol] = -1.0
    out[np.isnan(diff)] = np.nan
    return out


# --------------------------------------------------------------------------- #
# Moving averages
# --------------------------------------------------------------------------- #
def sma(series: pd.Series | pd.DataFrame, period: int = 20) -> pd.Series:
    """Simple moving average; NaN until ``period`` values are available."""
    _check_period(period)
    s = _close_series(series)
    return s.rolling(window=period, min_periods=period).mean()


def ema(series: pd.Series | pd.DataFrame, period: int = 20) -> pd.Series:
    """
    Exponential moving average seeded with an SMA.

    Parameters
    ----------
    series : pd.Series or pd.DataFrame
        Values to smooth. Leading NaNs are skipped, which lets the MACD
        signal line reuse this function on the MACD line.
    period : int, default 20
        Span; the smoothing factor is ``2 / (period + 1)``.

    Returns
    -------
    pd.Series
        NaN until ``period`` defined values have been seen; the first defined
        value is their simple mean.
    """
    _check_period(period)
    s = _close_series(series)
    values = s.to_numpy(dtype=float)
    out = np.full(len(values), np.nan)
    defined = np.flatnonzero(~np.isnan(values))
    if len(defined) < period:
        return pd.Series(out, index=s.index)

    start = defined[0]
    seed_at = start + period - 1
    alpha = 2.0 / (period + 1)
    prev = float(np.mean(values[start : seed_at + 1]))
    out[seed_at] = prev
    for i in range(seed_at + 1, len(values)):
        x = values[i]
        if np.isnan(x):
            continue
        prev = alpha * x + (1.0 - alpha) * prev
        out[i] = prev
    return pd.Series(out, index=s.index)


def classify_trend(
    sma20: Optional[float], sma50: Optional[float], sma200: Optional[float]
) -> TrendDirection:
    """Bullish iff sma20 > sma50 > sma200, bearish for the mirror, else sideways."""
    values = (sma20, sma50, sma200)
    if any(v is None or not np.isfinite(v) for v in values):
        return TrendDirection.SIDEWAYS
    tol = REL_TOL * max(abs(float(v)) for v in values)
    if sma20 - sma50 > tol and sma50 - sma200 > tol:
        return TrendDirection.BULLISH
    if sma50 - sma20 > tol and sma200 - sma50 > tol:
        return TrendDirection.BEARISH
    return TrendDirection.SIDEWAYS


# --------------------------------------------------------------------------- #
# Oscillators
# --------------------------------------------------------------------------- #
def rsi(series: pd.Series | pd.DataFrame, period: int = 14) -> pd.Series:
    """
    Compute Relative Strength Index (RSI).

    Parameters
    ----------
    series : pd.Series or pd.DataFrame
        Price series (e.g., closing prices).
    period : int, default 14
        Number of price changes averaged.

    Returns
    -------
    pd.Series
        RSI values scaled 0-100 using simple rolling averages of gains and
        losses. Defined from index ``period`` (the first index with
        ``period`` changes). A window with gains but no losses reads 100; a
        perfectly flat window reads 50.
    """
    _check_period(period)
    s = _close_series(series)
    delta = s.diff()
    gain = delta.clip(lower=0.0)
    loss = -delta.clip(upper=0.0)

    avg_gain = gain.rolling(window=period, min_periods=period).mean()
    avg_loss = loss.rolling(window=period, min_periods=period).mean()

    rs = avg_gain / avg_loss.where(avg_loss > 0)
    out = 100.0 - (100.0 / (1.0 + rs))
    no_loss = avg_loss.notna() & (avg_loss <= 0)
    out = out.mask(no_loss & (avg_gain > 0), 100.0)
    out = out.mask(no_loss & (avg_gain <= 0), 50.0)

    log.debug("RSI computed for %d bars", len(s))
    return out.clip(0.0, 100.0)


def rsi_signal(value: Optional[float], oversold: float = 30.0, overbought: float = 70.0) -> SignalType:
    """Oversold readings suggest buying, overbought readings selling."""
    if value is None or not np.isfinite(value):
        return SignalType.HOLD
    if value < oversold:
        return SignalType.BUY
    if value > overbought:
        return SignalType.SELL
    return SignalType.HOLD


def macd(
    series: pd.Series | pd.DataFrame,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> pd.DataFrame:
    """
    Moving Average Convergence Divergence.

    Parameters
    ----------
    series : pd.Series or pd.DataFrame
        Closing prices.
    fast, slow, signal : int
        EMA spans for the two price averages and the signal line.

    Returns
    -------
    pd.DataFrame
        Columns ``macd``, ``signal``, ``histogram`` and ``crossover``. A
        crossover is flagged on the bar where ``macd - signal`` changes sign
        relative to the previous bar.
    """
    s = _close_series(series)
    line = ema(s, fast) - ema(s, slow)
    sig = ema(line, signal)
    hist = line - sig

    sign = sign_with_tolerance(hist.to_numpy(dtype=float), s.to_numpy(dtype=float))
    prev = np.concatenate([[np.nan], sign[:-1]])
    cross = np.full(len(s), Crossover.NONE.value, dtype=object)
    with np.errstate(invalid="ignore"):
        cross[(prev <= 0) & (sign > 0)] = Crossover.BULLISH.value
        cross[(prev >= 0) & (sign < 0)] = Crossover.BEARISH.value

    return pd.DataFrame(
        {"macd": line, "signal": sig, "histogram": hist, "crossover": cross},
        index=s.index,
    )


def bollinger(
    series: pd.Series | pd.DataFrame, period: int = 20, num_std: float = 2.0
) -> pd.DataFrame:
    """
    Bollinger Bands around an SMA using the population standard deviation.

    ``percent_b`` is where the close sits inside the band (0 at the lower
    band, 1 at the upper); a band of zero width reads 0.5.
    """
    s = _close_series(series)
    mid = sma(s, period)
    std = s.rolling(window=period, min_periods=period).std(ddof=0)
    upper = mid + num_std * std
    lower = mid - num_std * std
    width = upper - lower

    degenerate = width <= REL_TOL * mid.abs()
    percent_b = ((s - lower) / width.where(~degenerate)).mask(degenerate & mid.notna(), 0.5)
    bandwidth = (width / mid.where(mid != 0)).mask(degenerate & mid.notna(), 0.0)

    return pd.DataFrame(
        {
            "upper": upper,
            "mid": mid,
            "lower": lower,
            "percent_b": percent_b,
            "bandwidth": bandwidth,
        },
        index=s.index,
    )


def stochastic(df: pd.DataFrame, k_period: int = 14, d_period: int = 3) -> pd.DataFrame:
    """Stochastic oscillator: %K over ``k_period`` bars and %D as its SMA."""
    _check_period(k_period)
    highest = df["high"].astype(float).rolling(k_period, min_periods=k_period).max()
    lowest = df["low"].astype(float).rolling(k_period, min_periods=k_period).min()
    close = df["close"].astype(float)
    span = highest - lowest
    k = 100.0 * (close - lowest) / span.where(span > 0)
    k = k.mask(span.notna() & (span <= 0), 50.0)
    d = k.rolling(d_period, min_periods=d_period).mean()
    return pd.DataFrame({"k": k, "d": d}, index=df.index)


# --------------------------------------------------------------------------- #
# Volatility
# --------------------------------------------------------------------------- #
def true_range(df: pd.DataFrame) -> pd.Series:
    """Max of high-low and the gaps from the previous close (high-low on bar 0)."""
    if not all(c in df.columns for c in ["high", "low", "close"]):
        raise ValueError("DataFrame must contain columns: high, low, close")
    prev_close = df["close"].astype(float).shift()
    parts = pd.concat(
        [
            df["high"] - df["low"],
            (df["high"] - prev_close).abs(),
            (df["low"] - prev_close).abs(),
        ],
        axis=1,
    )
    return parts.max(axis=1).astype(float)


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """
    Average True Range as a rolling mean of the true range.
    Requires columns: 'high', 'low', 'close'.
    """
    _check_period(period)
    return true_range(df).rolling(window=period, min_periods=period).mean()


def volatility_bucket(
    atr_value: Optional[float],
    pip_size: Optional[float] = None,
    *,
    low_pips: Optional[float] = None,
    high_pips: Optional[float] = None,
) -> Optional[Volatility]:
    """Map an ATR (price units) to low/medium/high by pip thresholds."""
    if atr_value is None or not np.isfinite(atr_value):
        return None
    market = get_market_settings()
    pip = pip_size or market.pip_size
    low = market.volatility_low_pips if low_pips is None else low_pips
    high = market.volatility_high_pips if high_pips is None else high_pips
    pips = float(atr_value) / pip
    if pips < low:
        return Volatility.LOW
    if pips < high:
        return Volatility.MEDIUM
    return Volatility.HIGH


# --------------------------------------------------------------------------- #
# Levels
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class PivotPoints:
    pivot: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float


@dataclass(frozen=True, slots=True)
class FibonacciLevels:
    high: float
    low: float
    levels: Tuple[Tuple[float, float], ...]

    def level(self, ratio: float) -> float:
        for r, price in self.levels:
            if abs(r - ratio) < 1e-9:
                return price
        raise KeyError(ratio)


def pivot_points(df: pd.DataFrame) -> Optional[PivotPoints]:
    """Classic floor pivots from the last completed bar (the one before the last)."""
    if len(df) < 2:
        return None
    bar = df.iloc[-2]
    h, l, c = float(bar["high"]), float(bar["low"]), float(bar["close"])
    p = (h + l + c) / 3.0
    return PivotPoints(
        pivot=p,
        r1=2 * p - l,
        r2=p + (h - l),
        r3=h + 2 * (p - l),
        s1=2 * p - h,
        s2=p - (h - l),
        s3=l - 2 * (h - p),
    )


def fibonacci_levels(df: pd.DataFrame, lookback: int = 50) -> Optional[FibonacciLevels]:
    """Retracement levels measured up from the lowest low of the lookback."""
    if len(df) == 0:
        return None
    recent = df.iloc[-lookback:]
    high = float(recent["high"].max())
    low = float(recent["low"].min())
    diff = high - low
    levels = tuple((r, high if r == 1.0 else low + diff * r) for r in FIB_RATIOS)
    return FibonacciLevels(high=high, low=low, levels=levels)


# --------------------------------------------------------------------------- #
# Aggregates
# --------------------------------------------------------------------------- #
def compute_indicators(df: pd.DataFrame) -> pd.DataFrame:
    """
    Every per-bar indicator in one frame aligned with ``df``.

    Parameters
    ----------
    df : pd.DataFrame
        Candle frame with open/high/low/close columns. Not modified.

    Returns
    -------
    pd.DataFrame
        Columns: rsi, macd, macd_signal, macd_hist, macd_cross, bb_upper,
        bb_mid, bb_lower, bb_percent_b, bb_bandwidth, stoch_k, stoch_d,
        atr, sma20, sma50, sma200, ema12, ema26, trend.
    """
    close = df["close"].astype(float)
    m = macd(close)
    bb = bollinger(close)
    st = stochastic(df)
    out = pd.DataFrame(
        {
            "rsi": rsi(close),
            "macd": m["macd"],
            "macd_signal": m["signal"],
            "macd_hist": m["histogram"],
            "macd_cross": m["crossover"],
            "bb_upper": bb["upper"],
            "bb_mid": bb["mid"],
            "bb_lower": bb["lower"],
            "bb_percent_b": bb["percent_b"],
            "bb_bandwidth": bb["bandwidth"],
            "stoch_k": st["k"],
            "stoch_d": st["d"],
            "atr": atr(df),
            "sma20": sma(close, 20),
            "sma50": sma(close, 50),
            "sma200": sma(close, 200),
            "ema12": ema(close, 12),
            "ema26": ema(close, 26),
        },
        index=df.index,
    )
    out["trend"] = [
        classify_trend(a, b, c).value
        for a, b, c in zip(out["sma20"], out["sma50"], out["sma200"])
    ]
    log.debug("indicators computed for %d bars", len(df))
    return out


@dataclass(frozen=True, slots=True)
class MACDReading:
    line: Optional[float]
    signal: Optional[float]
    histogram: Optional[float]
    crossover: Crossover


@dataclass(frozen=True, slots=True)
class BollingerReading:
    upper: Optional[float]
    mid: Optional[float]
    lower: Optional[float]
    percent_b: Optional[float]
    bandwidth: Optional[float]


@dataclass(frozen=True, slots=True)
class StochasticReading:
    k: Optional[float]
    d: Optional[float]

    @property
    def overbought(self) -> bool:
        return self.k is not None and self.k > 80

    @property
    def oversold(self) -> bool:
        return self.k is not None and self.k < 20


@dataclass(frozen=True, slots=True)
class ATRReading:
    value: Optional[float]
    volatility: Optional[Volatility]


@dataclass(frozen=True, slots=True)
class MovingAverages:
    sma20: Optional[float]
    sma50: Optional[float]
    sma200: Optional[float]
    ema12: Optional[float]
    ema26: Optional[float]
    trend: TrendDirection


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """Indicator values at one bar; ``None`` marks a value still warming up."""

    timestamp: datetime
    close: float
    rsi: Optional[float]
    rsi_signal: SignalType
    macd: MACDReading
    bollinger: BollingerReading
    stochastic: StochasticReading
    atr: ATRReading
    moving_averages: MovingAverages
    pivots: Optional[PivotPoints]
    fibonacci: Optional[FibonacciLevels]

    @property
    def overbought(self) -> bool:
        return self.rsi is not None and self.rsi > 70

    @property
    def oversold(self) -> bool:
        return self.rsi is not None and self.rsi < 30


def _defined(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if np.isfinite(value) else None


def indicator_snapshot(
    df: pd.DataFrame,
    index: int = -1,
    *,
    indicators: Optional[pd.DataFrame] = None,
    pip_size: Optional[float] = None,
) -> IndicatorSnapshot:
    """
    Read every indicator at one bar.

    Parameters
    ----------
    df : pd.DataFrame
        Candle frame.
    index : int, default -1
        Positional bar index (negative values count from the end).
    indicators : pd.DataFrame, optional
        Output of :func:`compute_indicators` for ``df`` when already computed.
    pip_size : float, optional
        Overrides the configured pip size for the volatility bucket.
    """
    if len(df) == 0:
        raise ValueError("cannot snapshot an empty candle frame")
    pos = index if index >= 0 else len(df) + index
    if not 0 <= pos < len(df):
        raise IndexError(index)
    ind = indicators if indicators is not None else compute_indicators(df.iloc[: pos + 1])
    row = ind.iloc[pos]
    history = df.iloc[: pos + 1]

    rsi_value = _defined(row["rsi"])
    atr_value = _defined(row["atr"])
    ts = df.index[pos]
    return IndicatorSnapshot(
        timestamp=ts.to_pydatetime() if hasattr(ts, "to_pydatetime") else ts,
        close=float(df["close"].iloc[pos]),
        rsi=rsi_value,
        rsi_signal=rsi_signal(rsi_value),
        macd=MACDReading(
            line=_defined(row["macd"]),
            signal=_defined(row["macd_signal"]),
            histogram=_defined(row["macd_hist"]),
            crossover=Crossover(row["macd_cross"]),
        ),
        bollinger=BollingerReading(
            upper=_defined(row["bb_upper"]),
            mid=_defined(row["bb_mid"]),
            lower=_defined(row["bb_lower"]),
            percent_b=_defined(row["bb_percent_b"]),
            bandwidth=_defined(row["bb_bandwidth"]),
        ),
        stochastic=StochasticReading(k=_defined(row["stoch_k"]), d=_defined(row["stoch_d"])),
        atr=ATRReading(value=atr_value, volatility=volatility_bucket(atr_value, pip_size)),
        moving_averages=MovingAverages(
            sma20=_defined(row["sma20"]),
            sma50=_defined(row["sma50"]),
            sma200=_defined(row["sma200"]),
            ema12=_defined(row["ema12"]),
            ema26=_defined(row["ema26"]),
            trend=TrendDirection(row["trend"]),
        ),
        pivots=pivot_points(history),
        fibonacci=fibonacci_levels(history),
    )


__all__ = [
    "REL_TOL",
    "Crossover",
    "sign_with_tolerance",
    "sma",
    "ema",
    "classify_trend",
    "rsi",
    "rsi_signal",
    "macd",
    "bollinger",
    "stochastic",
    "true_range",
    "atr",
    "volatility_bucket",
    "PivotPoints",
    "FibonacciLevels",
    "pivot_points",
    "fibonacci_levels",
    "compute_indicators",
    "MACDReading",
    "BollingerReading",
    "StochasticReading",
    "ATRReading",
    "MovingAverages",
    "IndicatorSnapshot",
    "indicator_snapshot",
]
