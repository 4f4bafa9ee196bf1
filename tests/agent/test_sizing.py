from __future__ import annotations

import pytest

from fxengine.agent.sizing import lot_size, pips


def test_lot_size_risks_requested_percent():
    lots = lot_size(10_000, 1.0, 0.0020, contract_size=100_000)
    assert lots == pytest.approx(0.5)
    # 0.5 lots * 20 pips * $10/pip == $100 == 1% of balance
    assert lots * 0.0020 * 100_000 == pytest.approx(100.0)


def test_lot_size_rounds_down_to_step():
    lots = lot_size(10_000, 1.0, 0.0030, contract_size=100_000, lot_step=0.01)
    assert lots == pytest.approx(0.33)


def test_lot_size_clamped_to_bounds():
    assert lot_size(100, 0.1, 0.01, contract_size=100_000, min_lot=0.01) == pytest.approx(0.01)
    assert lot_size(10_000_000, 5.0, 0.0001, contract_size=100_000, max_lot=10.0) == pytest.approx(10.0)


def test_margin_cap_limits_notional():
    lots = lot_size(1_000, 10.0, 0.0001, price=1.1, leverage=10, contract_size=100_000)
    assert lots * 100_000 * 1.1 <= 1_000 * 10 + 1e-6

    assert lot_size(100, 1.0, 0.001, price=1.1, leverage=1, contract_size=100_000) == 0.0


@pytest.mark.parametrize("balance, risk, stop", [(0, 1, 0.001), (1000, 0, 0.001), (1000, 1, 0)])
def test_degenerate_inputs_size_nothing(balance, risk, stop):
    assert lot_size(balance, risk, stop) == 0.0


def test_pips():
    assert pips(0.0025, 0.0001) == pytest.approx(25.0)
