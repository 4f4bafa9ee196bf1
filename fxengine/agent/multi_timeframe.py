"""Multi-timeframe trend and signal voting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from fxengine.core.models import (
    Alignment,
    SignalStrength,
    SignalType,
    TimeFrame,
    TrendDirection,
    Volatility,
)
from fxengine.core.numeric import round_half_up
from fxengine.dal.schemas import CandleInput, ensure_candle_frame
from fxengine.features.indicators import (
    REL_TOL,
    Crossover,
    classify_trend,
    compute_indicators,
    rsi_signal,
    volatility_bucket,
)
from fxengine.features.mtf_aggregate import mtf_aggregate

SR_LOOKBACK = 20

# Long timeframe first: dict insertion order breaks vote ties.
TREND_WEIGHTS = (50, 30, 20)
SIGNAL_WEIGHTS = (3, 2, 1)

DEFAULT_TIMEFRAMES = (TimeFrame.M5, TimeFrame.H1, TimeFrame.D1)


@dataclass(frozen=True, slots=True)
class TimeframeAnalysis:
    timeframe: TimeFrame
    trend: TrendDirection
    strength: float
    rsi: Optional[float]
    rsi_signal: SignalType
    macd_signal: SignalType
    ma_signal: SignalType
    support: Optional[float]
    resistance: Optional[float]
    volatility: Volatility
    atr: float
    price: float

    @property
    def votes(self) -> Tuple[SignalType, SignalType, SignalType]:
        return (self.rsi_signal, self.macd_signal, self.ma_signal)


@dataclass(frozen=True, slots=True)
class MultiTimeframeResult:
    short: TimeframeAnalysis
    medium: TimeframeAnalysis
    long: TimeframeAnalysis
    overall_trend: TrendDirection
    overall_signal: SignalType
    overall_strength: SignalStrength
    confidence: float
    alignment: Alignment
    entry_zone: Tuple[float, float]
    stop_loss: float
    take_profit: Tuple[float, ...]


def _above(value: float, reference: Optional[float]) -> bool:
    if reference is None or not np.isfinite(reference):
        return False
    return value - reference > REL_TOL * abs(reference)


def _sign(value: float, scale: float) -> int:
    if value is None or not np.isfinite(value):
        return 0
    tol = REL_TOL * abs(scale)
    if value > tol:
        return 1
    if value < -tol:
        return -1
    return 0


def _rsi_vote(value: Optional[float], trend: TrendDirection) -> SignalType:
    # An extreme reading in the direction of a fully aligned trend confirms it.
    base = rsi_signal(value)
    if trend is TrendDirection.BULLISH and base is SignalType.SELL:
        return SignalType.BUY
    if trend is TrendDirection.BEARISH and base is SignalType.BUY:
        return SignalType.SELL
    return base


def _macd_vote(crossover: Crossover, histogram: float, line: float, price: float) -> SignalType:
    if crossover is Crossover.BULLISH:
        return SignalType.BUY
    if crossover is Crossover.BEARISH:
        return SignalType.SELL
    hist_sign = _sign(histogram, price)
    if hist_sign:
        return SignalType.from_direction(hist_sign)
    return SignalType.from_direction(_sign(line, price))


def _neutral_analysis(timeframe: TimeFrame) -> TimeframeAnalysis:
    return TimeframeAnalysis(
        timeframe=timeframe,
        trend=TrendDirection.SIDEWAYS,
        strength=0.0,
        rsi=None,
        rsi_signal=SignalType.HOLD,
        macd_signal=SignalType.HOLD,
        ma_signal=SignalType.HOLD,
        support=None,
        resistance=None,
        volatility=Volatility.LOW,
        atr=0.0,
        price=0.0,
    )


def analyze_timeframe(
    candles: CandleInput,
    timeframe: TimeFrame,
    *,
    pip_size: Optional[float] = None,
) -> TimeframeAnalysis:
    """
    Trend, oscillator votes and levels for one timeframe.

    Args:
        candles (CandleInput): Candles for this timeframe.
        timeframe (TimeFrame): Label carried on the result.
        pip_size (Optional[float]): Overrides the configured pip size.

    Returns:
        TimeframeAnalysis: Warm-up indicators read as neutral (sideways trend,
        hold votes); ATR falls back to the last bar's range. No candles gives
        a neutral analysis with zero strength and no support/resistance.
    """
    df = ensure_candle_frame(candles)
    if df.empty:
        logger.debug("[mtf] no candles for timeframe={}; neutral analysis", timeframe.value)
        return _neutral_analysis(timeframe)

    ind = compute_indicators(df)
    last = ind.iloc[-1]
    price = float(df["close"].iloc[-1])

    smas = [float(last[c]) for c in ("sma20", "sma50", "sma200")]
    trend = classify_trend(*smas)
    strength = sum(_above(price, s) for s in smas) / 3 * 100

    rsi_value = float(last["rsi"]) if np.isfinite(last["rsi"]) else None
    atr_value = float(last["atr"])
    if not np.isfinite(atr_value):
        atr_value = float(df["high"].iloc[-1] - df["low"].iloc[-1])

    recent = df.iloc[-SR_LOOKBACK:]
    return TimeframeAnalysis(
        timeframe=timeframe,
        trend=trend,
        strength=float(strength),
        rsi=rsi_value,
        rsi_signal=_rsi_vote(rsi_value, trend),
        macd_signal=_macd_vote(
            Crossover(last["macd_cross"]), float(last["macd_hist"]), float(last["macd"]), price
        ),
        ma_signal=trend.to_signal(),
        support=float(recent["low"].min()),
        resistance=float(recent["high"].max()),
        volatility=volatility_bucket(atr_value, pip_size) or Volatility.LOW,
        atr=atr_value,
        price=price,
    )


def _alignment(trends: Sequence[TrendDirection]) -> Alignment:
    distinct = len(set(trends))
    if distinct == 1:
        return Alignment.FULL
    if distinct == len(trends):
        return Alignment.CONFLICTING
    return Alignment.PARTIAL


def _strength(alignment: Alignment, confidence: float) -> SignalStrength:
    if alignment is Alignment.FULL and confidence > 70:
        return SignalStrength.VERY_STRONG
    if alignment is Alignment.FULL or confidence > 60:
        return SignalStrength.STRONG
    if alignment is Alignment.PARTIAL or confidence > 50:
        return SignalStrength.MODERATE
    return SignalStrength.WEAK


def _levels(
    signal: SignalType,
    price: float,
    atr: float,
    supports: Iterable[Optional[float]],
    resistances: Iterable[Optional[float]],
) -> Tuple[Tuple[float, float], float, Tuple[float, ...]]:
    # Timeframes without candles carry no levels; fall back to price.
    lows = [s for s in supports if s is not None] or [price]
    highs = [r for r in resistances if r is not None] or [price]
    if signal is SignalType.BUY:
        return (
            (price - atr * 0.3, price + atr * 0.2),
            min(lows) - atr * 0.5,
            (price + atr * 1.5, price + atr * 2.5, price + atr * 4),
        )
    if signal is SignalType.SELL:
        return (
            (price - atr * 0.2, price + atr * 0.3),
            max(highs) + atr * 0.5,
            (price - atr * 1.5, price - atr * 2.5, price - atr * 4),
        )
    return (price - atr * 0.1, price + atr * 0.1), price - atr * 2, (price + atr * 2,)


def combine_timeframes(
    short: TimeframeAnalysis, medium: TimeframeAnalysis, long: TimeframeAnalysis
) -> MultiTimeframeResult:
    """Weighted trend and signal votes across three timeframe analyses."""
    ordered = (long, medium, short)

    trend_scores: Dict[TrendDirection, int] = {}
    for analysis, weight in zip(ordered, TREND_WEIGHTS):
        trend_scores[analysis.trend] = trend_scores.get(analysis.trend, 0) + weight
    overall_trend = max(trend_scores, key=trend_scores.__getitem__)

    signal_scores: Dict[SignalType, int] = {}
    for analysis, weight in zip(ordered, SIGNAL_WEIGHTS):
        for vote in analysis.votes:
            signal_scores[vote] = signal_scores.get(vote, 0) + weight
    overall_signal = max(signal_scores, key=signal_scores.__getitem__)
    total = sum(signal_scores.values())
    confidence = float(round_half_up(signal_scores[overall_signal] / total * 100))

    alignment = _alignment([a.trend for a in ordered])
    # Levels anchor on the finest timeframe that had candles.
    price = next((a.price for a in (short, medium, long) if a.support is not None), short.price)
    entry_zone, stop_loss, take_profit = _levels(
        overall_signal,
        price,
        long.atr,
        (short.support, medium.support),
        (short.resistance, medium.resistance),
    )
    logger.debug(
        "[mtf] trend={} signal={} confidence={} alignment={}",
        overall_trend.value,
        overall_signal.value,
        confidence,
        alignment.value,
    )
    return MultiTimeframeResult(
        short=short,
        medium=medium,
        long=long,
        overall_trend=overall_trend,
        overall_signal=overall_signal,
        overall_strength=_strength(alignment, confidence),
        confidence=confidence,
        alignment=alignment,
        entry_zone=entry_zone,
        stop_loss=stop_loss,
        take_profit=take_profit,
    )


def analyze_multi_timeframe(
    short: CandleInput,
    medium: CandleInput,
    long: CandleInput,
    *,
    timeframes: Tuple[TimeFrame, TimeFrame, TimeFrame] = DEFAULT_TIMEFRAMES,
    pip_size: Optional[float] = None,
) -> MultiTimeframeResult:
    """
    Analyze three independent candle series and fuse the results.

    Args:
        short, medium, long (CandleInput): One series per timeframe.
        timeframes: Labels for (short, medium, long).
        pip_size (Optional[float]): Overrides the configured pip size.

    Returns:
        MultiTimeframeResult: Fused trend, signal, alignment and levels.
    """
    tf_short, tf_medium, tf_long = timeframes
    return combine_timeframes(
        analyze_timeframe(short, tf_short, pip_size=pip_size),
        analyze_timeframe(medium, tf_medium, pip_size=pip_size),
        analyze_timeframe(long, tf_long, pip_size=pip_size),
    )


def analyze_from_base(
    candles: CandleInput,
    *,
    timeframes: Tuple[TimeFrame, TimeFrame, TimeFrame] = DEFAULT_TIMEFRAMES,
    pip_size: Optional[float] = None,
) -> MultiTimeframeResult:
    """Resample one fine-grained series into three timeframes, then analyze."""
    frames = mtf_aggregate(candles, timeframes)
    return analyze_multi_timeframe(
        frames[timeframes[0]],
        frames[timeframes[1]],
        frames[timeframes[2]],
        timeframes=timeframes,
        pip_size=pip_size,
    )


__all__ = [
    "TimeframeAnalysis",
    "MultiTimeframeResult",
    "analyze_timeframe",
    "combine_timeframes",
    "analyze_multi_timeframe",
    "analyze_from_base",
]
