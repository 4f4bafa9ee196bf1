from __future__ import annotations

import pytest

from fxengine.core.numeric import round_half_up, safe_ratio


@pytest.mark.parametrize(
    "value, expected",
    [(2.5, 3), (2.4999, 2), (0.5, 1), (-2.5, -2), (99.5, 100)],
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_safe_ratio_regular_division():
    assert safe_ratio(3.0, 2.0, 1e6) == pytest.approx(1.5)


def test_safe_ratio_zero_denominator_uses_sentinel_only_for_positive_numerator():
    assert safe_ratio(5.0, 0.0, 1e6) == 1e6
    assert safe_ratio(0.0, 0.0, 1e6) == 0.0
    assert safe_ratio(-5.0, 0.0, 1e6) == 0.0


def test_safe_ratio_rejects_negative_denominator():
    with pytest.raises(ValueError):
        safe_ratio(1.0, -1.0, 1e6)
