from __future__ import annotations

import pytest

from fxengine.core.models import TimeFrame
from fxengine.dal.synthetic import generate_candles
from fxengine.features.mtf_aggregate import aggregate_ohlcv, mtf_aggregate


@pytest.fixture(scope="module")
def m5_day():
    return generate_candles(TimeFrame.M5, 288, seed=1)


def test_aggregate_to_hour(m5_day):
    h1 = aggregate_ohlcv(m5_day, TimeFrame.H1)
    first_hour = m5_day.iloc[:12]

    assert len(h1) == 24
    assert h1["open"].iloc[0] == first_hour["open"].iloc[0]
    assert h1["high"].iloc[0] == first_hour["high"].max()
    assert h1["low"].iloc[0] == first_hour["low"].min()
    assert h1["close"].iloc[0] == first_hour["close"].iloc[-1]
    assert h1["volume"].iloc[0] == pytest.approx(first_hour["volume"].sum())


def test_mtf_aggregate_returns_each_timeframe(m5_day):
    frames = mtf_aggregate(m5_day, (TimeFrame.M15, TimeFrame.H1, TimeFrame.H4))

    assert set(frames) == {TimeFrame.M15, TimeFrame.H1, TimeFrame.H4}
    assert len(frames[TimeFrame.M15]) == 96
    assert len(frames[TimeFrame.H4]) == 6
