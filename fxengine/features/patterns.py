"""
Chart and candlestick pattern recognition.

Chart patterns are read off local extrema (strict peaks/troughs within a
symmetric window); candlestick patterns look only at the last three bars.
Every detector returns at most one match per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from fxengine.core.models import SignalType
from fxengine.core.numeric import round_half_up
from fxengine.dal.schemas import CandleInput, ensure_candle_frame

log = logging.getLogger(__name__)

MIN_CANDLES = 20
EXTREMA_WINDOW = 5
SHOULDER_TOLERANCE = 0.02
DOUBLE_TOLERANCE = 0.015
TRIANGLE_SLOPE = 1e-4


class PatternType(str, Enum):
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    TRIPLE_TOP = "triple_top"
    TRIPLE_BOTTOM = "triple_bottom"
    ASCENDING_TRIANGLE = "ascending_triangle"
    DESCENDING_TRIANGLE = "descending_triangle"
    SYMMETRICAL_TRIANGLE = "symmetrical_triangle"
    BULL_FLAG = "bull_flag"
    BEAR_FLAG = "bear_flag"
    RISING_WEDGE = "rising_wedge"
    FALLING_WEDGE = "falling_wedge"
    DOJI = "doji"
    HAMMER = "hammer"
    SHOOTING_STAR = "shooting_star"
    ENGULFING_BULLISH = "engulfing_bullish"
    ENGULFING_BEARISH = "engulfing_bearish"
    MORNING_STAR = "morning_star"
    EVENING_STAR = "evening_star"
    THREE_WHITE_SOLDIERS = "three_white_soldiers"
    THREE_BLACK_CROWS = "three_black_crows"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Reliability(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_confidence(cls, confidence: float) -> "Reliability":
        if confidence >= 80:
            return cls.HIGH
        if confidence >= 65:
            return cls.MEDIUM
        return cls.LOW


@dataclass(frozen=True, slots=True)
class PatternPoint:
    index: int
    price: float
    label: str


@dataclass(frozen=True, slots=True)
class DetectedPattern:
    pattern_type: PatternType
    start_index: int
    end_index: int
    confidence: float
    signal: SignalType
    target_price: float
    stop_loss: float
    points: Tuple[PatternPoint, ...]

    @property
    def reliability(self) -> Reliability:
        return Reliability.from_confidence(self.confidence)

    @property
    def name(self) -> str:
        return self.pattern_type.label


@dataclass(frozen=True, slots=True)
class PatternSummary:
    bullish: int
    bearish: int
    neutral: int
    bias: SignalType
    strongest: Optional[DetectedPattern]


def _scaled_confidence(diff: float, tolerance: float, base: float, span: float) -> float:
    fit = max(0.0, 1.0 - diff / tolerance)
    return float(min(100.0, max(0.0, base + round_half_up(span * fit))))


# --------------------------------------------------------------------------- #
# Extrema
# --------------------------------------------------------------------------- #
def find_peaks(highs: Sequence[float], window: int = EXTREMA_WINDOW) -> np.ndarray:
    """Indices whose high is strictly above every other high within ``window`` bars."""
    values = np.asarray(highs, dtype=float)
    if len(values) < 2 * window + 1:
        return np.array([], dtype=int)
    windows = sliding_window_view(values, 2 * window + 1)
    center = windows[:, window]
    others = np.maximum(windows[:, :window].max(axis=1), windows[:, window + 1 :].max(axis=1))
    return np.flatnonzero(center > others) + window


def find_troughs(lows: Sequence[float], window: int = EXTREMA_WINDOW) -> np.ndarray:
    """Indices whose low is strictly below every other low within ``window`` bars."""
    values = np.asarray(lows, dtype=float)
    if len(values) < 2 * window + 1:
        return np.array([], dtype=int)
    windows = sliding_window_view(values, 2 * window + 1)
    center = windows[:, window]
    others = np.minimum(windows[:, :window].min(axis=1), windows[:, window + 1 :].min(axis=1))
    return np.flatnonzero(center < others) + window


# --------------------------------------------------------------------------- #
# Chart patterns
# --------------------------------------------------------------------------- #
def detect_head_and_shoulders(
    highs: np.ndarray, lows: np.ndarray, peaks: np.ndarray
) -> Optional[DetectedPattern]:
    for i in range(len(peaks) - 1, 1, -1):
        ls, head, rs = int(peaks[i - 2]), int(peaks[i - 1]), int(peaks[i])
        left, top, right = highs[ls], highs[head], highs[rs]
        if not (top > left and top > right):
            continue
        diff = abs(left - right) / left
        if diff >= SHOULDER_TOLERANCE:
            continue
        neckline = float(lows[ls:rs].min())
        height = top - neckline
        return DetectedPattern(
            pattern_type=PatternType.HEAD_AND_SHOULDERS,
            start_index=ls,
            end_index=rs,
            confidence=_scaled_confidence(diff, SHOULDER_TOLERANCE, 75, 25),
            signal=SignalType.SELL,
            target_price=neckline - height,
            stop_loss=top + height * 0.1,
            points=(
                PatternPoint(ls, float(left), "left_shoulder"),
                PatternPoint(head, float(top), "head"),
                PatternPoint(rs, float(right), "right_shoulder"),
            ),
        )
    return None


def detect_inverse_head_and_shoulders(
    highs: np.ndarray, lows: np.ndarray, troughs: np.ndarray
) -> Optional[DetectedPattern]:
    for i in range(len(troughs) - 1, 1, -1):
        ls, head, rs = int(troughs[i - 2]), int(troughs[i - 1]), int(troughs[i])
        left, bottom, right = lows[ls], lows[head], lows[rs]
        if not (bottom < left and bottom < right):
            continue
        diff = abs(left - right) / left
        if diff >= SHOULDER_TOLERANCE:
            continue
        neckline = float(highs[ls:rs].max())
        height = neckline - bottom
        return DetectedPattern(
            pattern_type=PatternType.INVERSE_HEAD_AND_SHOULDERS,
            start_index=ls,
            end_index=rs,
            confidence=_scaled_confidence(diff, SHOULDER_TOLERANCE, 75, 25),
            signal=SignalType.BUY,
            target_price=neckline + height,
            stop_loss=bottom - height * 0.1,
            points=(
                PatternPoint(ls, float(left), "left_shoulder"),
                PatternPoint(head, float(bottom), "head"),
                PatternPoint(rs, float(right), "right_shoulder"),
            ),
        )
    return None


def detect_double_top(
    highs: np.ndarray, lows: np.ndarray, peaks: np.ndarray
) -> Optional[DetectedPattern]:
    for i in range(len(peaks) - 1, 0, -1):
        p1, p2 = int(peaks[i - 1]), int(peaks[i])
        price1, price2 = highs[p1], highs[p2]
        diff = abs(price1 - price2) / price1
        if diff >= DOUBLE_TOLERANCE:
            continue
        trough = float(lows[p1:p2].min())
        top = max(price1, price2)
        height = top - trough
        return DetectedPattern(
            pattern_type=PatternType.DOUBLE_TOP,
            start_index=p1,
            end_index=p2,
            confidence=_scaled_confidence(diff, DOUBLE_TOLERANCE, 70, 30),
            signal=SignalType.SELL,
            target_price=trough - height,
            stop_loss=top + height * 0.1,
            points=(
                PatternPoint(p1, float(price1), "top_1"),
                PatternPoint(p2, float(price2), "top_2"),
            ),
        )
    return None


def detect_double_bottom(
    highs: np.ndarray, lows: np.ndarray, troughs: np.ndarray
) -> Optional[DetectedPattern]:
    for i in range(len(troughs) - 1, 0, -1):
        t1, t2 = int(troughs[i - 1]), int(troughs[i])
        price1, price2 = lows[t1], lows[t2]
        diff = abs(price1 - price2) / price1
        if diff >= DOUBLE_TOLERANCE:
            continue
        peak = float(highs[t1:t2].max())
        bottom = min(price1, price2)
        height = peak - bottom
        return DetectedPattern(
            pattern_type=PatternType.DOUBLE_BOTTOM,
            start_index=t1,
            end_index=t2,
            confidence=_scaled_confidence(diff, DOUBLE_TOLERANCE, 70, 30),
            signal=SignalType.BUY,
            target_price=peak + height,
            stop_loss=bottom - height * 0.1,
            points=(
                PatternPoint(t1, float(price1), "bottom_1"),
                PatternPoint(t2, float(price2), "bottom_2"),
            ),
        )
    return None


def _triple_spread(prices: Sequence[float]) -> float:
    return (max(prices) - min(prices)) / prices[0]


def detect_triple_top(
    highs: np.ndarray, lows: np.ndarray, peaks: np.ndarray
) -> Optional[DetectedPattern]:
    for i in range(len(peaks) - 1, 1, -1):
        idx = [int(p) for p in peaks[i - 2 : i + 1]]
        prices = [float(highs[j]) for j in idx]
        diff = _triple_spread(prices)
        if diff >= DOUBLE_TOLERANCE:
            continue
        neckline = float(lows[idx[0] : idx[2]].min())
        top = max(prices)
        height = top - neckline
        return DetectedPattern(
            pattern_type=PatternType.TRIPLE_TOP,
            start_index=idx[0],
            end_index=idx[2],
            confidence=_scaled_confidence(diff, DOUBLE_TOLERANCE, 72, 28),
            signal=SignalType.SELL,
            target_price=neckline - height,
            stop_loss=top + height * 0.1,
            points=tuple(
                PatternPoint(j, p, f"top_{n}") for n, (j, p) in enumerate(zip(idx, prices), 1)
            ),
        )
    return None


def detect_triple_bottom(
    highs: np.ndarray, lows: np.ndarray, troughs: np.ndarray
) -> Optional[DetectedPattern]:
    for i in range(len(troughs) - 1, 1, -1):
        idx = [int(t) for t in troughs[i - 2 : i + 1]]
        prices = [float(lows[j]) for j in idx]
        diff = _triple_spread(prices)
        if diff >= DOUBLE_TOLERANCE:
            continue
        neckline = float(highs[idx[0] : idx[2]].max())
        bottom = min(prices)
        height = neckline - bottom
        return DetectedPattern(
            pattern_type=PatternType.TRIPLE_BOTTOM,
            start_index=idx[0],
            end_index=idx[2],
            confidence=_scaled_confidence(diff, DOUBLE_TOLERANCE, 72, 28),
            signal=SignalType.BUY,
            target_price=neckline + height,
            stop_loss=bottom - height * 0.1,
            points=tuple(
                PatternPoint(j, p, f"bottom_{n}") for n, (j, p) in enumerate(zip(idx, prices), 1)
            ),
        )
    return None


def detect_triangle(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    peaks: np.ndarray,
    troughs: np.ndarray,
) -> Optional[DetectedPattern]:
    """Ascending, descending or symmetrical triangle over the last three swings."""
    if len(peaks) < 2 or len(troughs) < 2:
        return None
    rp = [int(p) for p in peaks[-3:]]
    rt = [int(t) for t in troughs[-3:]]
    peak1, peak2 = float(highs[rp[0]]), float(highs[rp[-1]])
    trough1, trough2 = float(lows[rt[0]]), float(lows[rt[-1]])
    price = float(closes[-1])

    peak_slope = (peak2 - peak1) / (rp[-1] - rp[0]) / price
    trough_slope = (trough2 - trough1) / (rt[-1] - rt[0]) / price
    start = min(rp[0], rt[0])
    end = len(closes) - 1
    height = peak1 - trough1

    if abs(peak_slope) < TRIANGLE_SLOPE and trough_slope > TRIANGLE_SLOPE:
        return DetectedPattern(
            pattern_type=PatternType.ASCENDING_TRIANGLE,
            start_index=start,
            end_index=end,
            confidence=70.0,
            signal=SignalType.BUY,
            target_price=peak1 + height,
            stop_loss=trough2,
            points=(
                PatternPoint(rp[0], peak1, "resistance"),
                PatternPoint(rt[0], trough1, "support_1"),
                PatternPoint(rt[-1], trough2, "support_2"),
            ),
        )
    if peak_slope < -TRIANGLE_SLOPE and abs(trough_slope) < TRIANGLE_SLOPE:
        return DetectedPattern(
            pattern_type=PatternType.DESCENDING_TRIANGLE,
            start_index=start,
            end_index=end,
            confidence=70.0,
            signal=SignalType.SELL,
            target_price=trough1 - height,
            stop_loss=peak2,
            points=(
                PatternPoint(rp[0], peak1, "resistance_1"),
                PatternPoint(rp[-1], peak2, "resistance_2"),
                PatternPoint(rt[0], trough1, "support"),
            ),
        )
    if peak_slope < -TRIANGLE_SLOPE and trough_slope > TRIANGLE_SLOPE:
        return DetectedPattern(
            pattern_type=PatternType.SYMMETRICAL_TRIANGLE,
            start_index=start,
            end_index=end,
            confidence=60.0,
            signal=SignalType.HOLD,
            target_price=price,
            stop_loss=trough2,
            points=(
                PatternPoint(rp[0], peak1, "upper_1"),
                PatternPoint(rp[-1], peak2, "upper_2"),
                PatternPoint(rt[0], trough1, "lower_1"),
                PatternPoint(rt[-1], trough2, "lower_2"),
            ),
        )
    return None


# --------------------------------------------------------------------------- #
# Candlesticks
# --------------------------------------------------------------------------- #
def detect_candlestick_patterns(df: pd.DataFrame) -> List[DetectedPattern]:
    """Single, double and triple candle formations ending on the last bar."""
    n = len(df)
    if n < 3:
        return []
    o = df["open"].to_numpy(dtype=float)[-3:]
    h = df["high"].to_numpy(dtype=float)[-3:]
    l = df["low"].to_numpy(dtype=float)[-3:]
    c = df["close"].to_numpy(dtype=float)[-3:]
    last, prev, first = n - 1, n - 2, n - 3

    body = abs(c[2] - o[2])
    total = h[2] - l[2]
    upper = h[2] - max(o[2], c[2])
    lower = min(o[2], c[2]) - l[2]
    prev_body = abs(c[1] - o[1])
    bull = c > o
    bear = c < o

    out: List[DetectedPattern] = []

    if total > 0 and body < total * 0.1:
        out.append(
            DetectedPattern(
                PatternType.DOJI, last, last, 60.0, SignalType.HOLD,
                float(c[2]), float(l[2]), (PatternPoint(last, float(c[2]), "doji"),),
            )
        )
    if bull[2] and lower > body * 2 and upper < body * 0.5:
        out.append(
            DetectedPattern(
                PatternType.HAMMER, last, last, 65.0, SignalType.BUY,
                float(h[2] + total), float(l[2]), (PatternPoint(last, float(c[2]), "hammer"),),
            )
        )
    if bear[2] and upper > body * 2 and lower < body * 0.5:
        out.append(
            DetectedPattern(
                PatternType.SHOOTING_STAR, last, last, 65.0, SignalType.SELL,
                float(l[2] - total), float(h[2]),
                (PatternPoint(last, float(c[2]), "shooting_star"),),
            )
        )
    if bear[1] and bull[2] and o[2] < c[1] and c[2] > o[1]:
        out.append(
            DetectedPattern(
                PatternType.ENGULFING_BULLISH, prev, last, 75.0, SignalType.BUY,
                float(h[2] + prev_body), float(min(l[1], l[2])),
                (PatternPoint(prev, float(c[1]), "engulfed"), PatternPoint(last, float(c[2]), "engulfing")),
            )
        )
    if bull[1] and bear[2] and o[2] > c[1] and c[2] < o[1]:
        out.append(
            DetectedPattern(
                PatternType.ENGULFING_BEARISH, prev, last, 75.0, SignalType.SELL,
                float(l[2] - prev_body), float(max(h[1], h[2])),
                (PatternPoint(prev, float(c[1]), "engulfed"), PatternPoint(last, float(c[2]), "engulfing")),
            )
        )

    first_body = abs(c[0] - o[0])
    middle_small = prev_body < first_body * 0.3
    if bear[0] and middle_small and bull[2] and c[2] > (o[0] + c[0]) / 2:
        out.append(
            DetectedPattern(
                PatternType.MORNING_STAR, first, last, 80.0, SignalType.BUY,
                float(c[2] + (o[0] - l[1])), float(l.min()),
                (
                    PatternPoint(first, float(c[0]), "first"),
                    PatternPoint(prev, float(c[1]), "star"),
                    PatternPoint(last, float(c[2]), "confirmation"),
                ),
            )
        )
    if bull[0] and middle_small and bear[2] and c[2] < (o[0] + c[0]) / 2:
        out.append(
            DetectedPattern(
                PatternType.EVENING_STAR, first, last, 80.0, SignalType.SELL,
                float(c[2] - (h[1] - o[0])), float(h.max()),
                (
                    PatternPoint(first, float(c[0]), "first"),
                    PatternPoint(prev, float(c[1]), "star"),
                    PatternPoint(last, float(c[2]), "confirmation"),
                ),
            )
        )

    if bull.all() and o[1] > o[0] and c[1] > c[0] and o[2] > o[1] and c[2] > c[1]:
        out.append(
            DetectedPattern(
                PatternType.THREE_WHITE_SOLDIERS, first, last, 85.0, SignalType.BUY,
                float(c[2] + (c[2] - o[0])), float(l[0]),
                tuple(PatternPoint(first + k, float(c[k]), f"soldier_{k + 1}") for k in range(3)),
            )
        )
    if bear.all() and o[1] < o[0] and c[1] < c[0] and o[2] < o[1] and c[2] < c[1]:
        out.append(
            DetectedPattern(
                PatternType.THREE_BLACK_CROWS, first, last, 85.0, SignalType.SELL,
                float(c[2] - (o[0] - c[2])), float(h[0]),
                tuple(PatternPoint(first + k, float(c[k]), f"crow_{k + 1}") for k in range(3)),
            )
        )
    return out


# --------------------------------------------------------------------------- #
# Aggregate
# --------------------------------------------------------------------------- #
def detect_patterns(candles: CandleInput, window: int = EXTREMA_WINDOW) -> List[DetectedPattern]:
    """
    Run every detector over a candle window.

    Parameters
    ----------
    candles : sequence of Candle or pd.DataFrame
        Ordered candles; validated on entry.
    window : int, default 5
        Half-width of the extrema neighbourhood.

    Returns
    -------
    list of DetectedPattern
        All matches sorted by descending confidence (ties keep detector
        order); empty when fewer than 20 candles are supplied.
    """
    df = ensure_candle_frame(candles)
    if len(df) < MIN_CANDLES:
        return []

    highs = df["high"].to_numpy(dtype=float)
    lows = df["low"].to_numpy(dtype=float)
    closes = df["close"].to_numpy(dtype=float)
    peaks = find_peaks(highs, window)
    troughs = find_troughs(lows, window)

    detectors: List[Callable[[], Optional[DetectedPattern]]] = [
        lambda: detect_head_and_shoulders(highs, lows, peaks),
        lambda: detect_inverse_head_and_shoulders(highs, lows, troughs),
        lambda: detect_double_top(highs, lows, peaks),
        lambda: detect_double_bottom(highs, lows, troughs),
        lambda: detect_triple_top(highs, lows, peaks),
        lambda: detect_triple_bottom(highs, lows, troughs),
        lambda: detect_triangle(highs, lows, closes, peaks, troughs),
    ]
    found = [p for p in (d() for d in detectors) if p is not None]
    found.extend(detect_candlestick_patterns(df))
    found.sort(key=lambda p: p.confidence, reverse=True)

    log.debug(
        "patterns: %d found over %d candles (%d peaks, %d troughs)",
        len(found), len(df), len(peaks), len(troughs),
    )
    return found


def summarize_patterns(patterns: Sequence[DetectedPattern]) -> PatternSummary:
    """Count directional matches and report the confidence-weighted bias."""
    bullish = [p for p in patterns if p.signal is SignalType.BUY]
    bearish = [p for p in patterns if p.signal is SignalType.SELL]
    neutral = len(patterns) - len(bullish) - len(bearish)
    bull_score = sum(p.confidence for p in bullish)
    bear_score = sum(p.confidence for p in bearish)
    if bull_score > bear_score:
        bias = SignalType.BUY
    elif bear_score > bull_score:
        bias = SignalType.SELL
    else:
        bias = SignalType.HOLD
    strongest = max(patterns, key=lambda p: p.confidence) if patterns else None
    return PatternSummary(
        bullish=len(bullish),
        bearish=len(bearish),
        neutral=neutral,
        bias=bias,
        strongest=strongest,
    )


__all__ = [
    "PatternType",
    "Reliability",
    "PatternPoint",
    "DetectedPattern",
    "PatternSummary",
    "find_peaks",
    "find_troughs",
    "detect_head_and_shoulders",
    "detect_inverse_head_and_shoulders",
    "detect_double_top",
    "detect_double_bottom",
    "detect_triple_top",
    "detect_triple_bottom",
    "detect_triangle",
    "detect_candlestick_patterns",
    "detect_patterns",
    "summarize_patterns",
]
