from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from fxengine.core.models import TimeFrame
from fxengine.dal.synthetic import generate_candles


def test_seeded_series_is_reproducible():
    a = generate_candles(TimeFrame.H1, 200, seed=3)
    b = generate_candles(TimeFrame.H1, 200, seed=3)
    c = generate_candles(TimeFrame.H1, 200, seed=4)

    pd.testing.assert_frame_equal(a, b)
    assert not np.allclose(a["close"].to_numpy(), c["close"].to_numpy())


def test_candles_are_internally_consistent():
    df = generate_candles(TimeFrame.M15, 300, seed=11)

    assert (df["high"] >= df[["open", "close"]].max(axis=1)).all()
    assert (df["low"] <= df[["open", "close"]].min(axis=1)).all()
    assert df.index.is_monotonic_increasing
    assert (df.index.to_series().diff().dropna() == pd.Timedelta(minutes=15)).all()


def test_count_must_be_positive():
    with pytest.raises(ValueError):
        generate_candles(count=0)
