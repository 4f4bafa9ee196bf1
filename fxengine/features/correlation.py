from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import List, Mapping

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)


class CorrelationStrength(str, Enum):
    STRONG_POSITIVE = "strong_positive"
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    STRONG_NEGATIVE = "strong_negative"


@dataclass(frozen=True, slots=True)
class PairCorrelation:
    pair_a: str
    pair_b: str
    correlation: float
    strength: CorrelationStrength


def _returns(closes) -> np.ndarray:
    values = np.asarray(pd.Series(closes, dtype=float).to_numpy(), dtype=float)
    if len(values) < 2:
        return np.array([], dtype=float)
    prev = values[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(prev != 0, values[1:] / prev - 1.0, 0.0)


def correlation(closes_a, closes_b) -> float:
    """
    Pearson correlation of close-to-close returns.

    Series are aligned on their most recent common length. Degenerate input
    (fewer than two returns, or a series with no variance) reads 0.
    """
    ra, rb = _returns(closes_a), _returns(closes_b)
    n = min(len(ra), len(rb))
    if n < 2:
        return 0.0
    ra, rb = ra[-n:], rb[-n:]
    da, db = ra - ra.mean(), rb - rb.mean()
    denom = float(np.sqrt((da * da).sum() * (db * db).sum()))
    if denom == 0.0 or not np.isfinite(denom):
        return 0.0
    r = float((da * db).sum() / denom)
    if not np.isfinite(r):
        return 0.0
    return float(np.clip(r, -1.0, 1.0))


def interpret_correlation(r: float) -> CorrelationStrength:
    if r >= 0.7:
        return CorrelationStrength.STRONG_POSITIVE
    if r >= 0.3:
        return CorrelationStrength.POSITIVE
    if r >= -0.3:
        return CorrelationStrength.NEUTRAL
    if r >= -0.7:
        return CorrelationStrength.NEGATIVE
    return CorrelationStrength.STRONG_NEGATIVE


def correlation_matrix(closes_by_pair: Mapping[str, object]) -> List[PairCorrelation]:
    """Every unordered pair, strongest absolute correlation first."""
    out: List[PairCorrelation] = []
    for a, b in combinations(closes_by_pair.keys(), 2):
        r = correlation(closes_by_pair[a], closes_by_pair[b])
        out.append(PairCorrelation(a, b, r, interpret_correlation(r)))
    out.sort(key=lambda pc: abs(pc.correlation), reverse=True)
    log.debug("correlation matrix built for %d pairs", len(closes_by_pair))
    return out


__all__ = [
    "CorrelationStrength",
    "PairCorrelation",
    "correlation",
    "interpret_correlation",
    "correlation_matrix",
]
