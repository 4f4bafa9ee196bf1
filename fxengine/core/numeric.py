from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def safe_ratio(numerator: float, denominator: float, sentinel: float) -> float:
    """
    Ratio with a defined answer when the denominator is zero.

    A zero (or negative-zero) denominator yields ``sentinel`` when the
    numerator is positive and ``0.0`` otherwise, so an all-win ledger reads
    as a large finite number instead of infinity.
    """
    if denominator > 0:
        return float(numerator) / float(denominator)
    if denominator < 0:
        raise ValueError("denominator must be non-negative")
    return float(sentinel) if numerator > 0 else 0.0


__all__ = ["round_half_up", "safe_ratio"]
