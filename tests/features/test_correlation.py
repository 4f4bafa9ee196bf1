from __future__ import annotations

import numpy as np
import pytest

from fxengine.features.correlation import (
    CorrelationStrength,
    correlation,
    correlation_matrix,
    interpret_correlation,
)


def test_identical_and_mirrored_returns(h1_candles):
    close = h1_candles["close"].to_numpy()
    mirrored = 2 * close[0] - close

    assert correlation(close, close) == pytest.approx(1.0)
    assert correlation(close, mirrored) < -0.9


def test_degenerate_inputs_read_zero():
    assert correlation([1.0, 1.0, 1.0], [1.0, 2.0, 3.0]) == 0.0
    assert correlation([1.0], [2.0]) == 0.0


def test_result_stays_in_range():
    rng = np.random.default_rng(5)
    a = 1.0 + np.cumsum(rng.normal(0, 0.001, 200))
    b = 1.0 + np.cumsum(rng.normal(0, 0.001, 150))
    r = correlation(a, b)
    assert -1.0 <= r <= 1.0


@pytest.mark.parametrize(
    "r, expected",
    [
        (0.7, CorrelationStrength.STRONG_POSITIVE),
        (0.3, CorrelationStrength.POSITIVE),
        (0.0, CorrelationStrength.NEUTRAL),
        (-0.5, CorrelationStrength.NEGATIVE),
        (-0.71, CorrelationStrength.STRONG_NEGATIVE),
    ],
)
def test_interpretation_thresholds(r, expected):
    assert interpret_correlation(r) is expected


def test_matrix_sorted_by_magnitude(h1_candles):
    close = h1_candles["close"].to_numpy()
    rng = np.random.default_rng(9)
    noise = 1.0 + np.cumsum(rng.normal(0, 0.001, len(close)))

    matrix = correlation_matrix({"EUR/USD": close, "EUR/USD_copy": close, "NOISE": noise})

    assert len(matrix) == 3
    assert (matrix[0].pair_a, matrix[0].pair_b) == ("EUR/USD", "EUR/USD_copy")
    magnitudes = [abs(m.correlation) for m in matrix]
    assert magnitudes == sorted(magnitudes, reverse=True)
