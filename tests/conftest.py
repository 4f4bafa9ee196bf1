from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Callable

import numpy as np
import pandas as pd
import pytest

from fxengine.core.models import TimeFrame
from fxengine.dal.synthetic import generate_candles
from fxengine.logging_utils import setup_test_logging

os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging()
    yield


def _frame(close: np.ndarray, freq: str, start: str = "2024-01-01") -> pd.DataFrame:
    idx = pd.date_range(start, periods=len(close), freq=freq, tz="UTC", name="timestamp")
    open_ = np.concatenate([[close[0]], close[:-1]])
    return pd.DataFrame(
        {
            "open": open_,
            "high": np.maximum(open_, close) + 0.0001,
            "low": np.minimum(open_, close) - 0.0001,
            "close": close,
            "volume": np.full(len(close), 1000.0),
        },
        index=idx,
    )


@pytest.fixture
def make_linear() -> Callable[..., pd.DataFrame]:
    """Strictly trending series: ``slope`` per bar from ``start_price``."""

    def _make(n: int = 300, slope: float = 0.0001, freq: str = "h", start_price: float = 1.0):
        close = start_price + slope * np.arange(n, dtype=float)
        return _frame(close, freq)

    return _make


@pytest.fixture
def make_flat() -> Callable[..., pd.DataFrame]:
    """Constant candles: open == high == low == close."""

    def _make(n: int = 30, price: float = 1.1, freq: str = "h"):
        idx = pd.date_range("2024-01-01", periods=n, freq=freq, tz="UTC", name="timestamp")
        return pd.DataFrame(
            {"open": price, "high": price, "low": price, "close": price, "volume": 0.0},
            index=idx,
        )

    return _make


@pytest.fixture(scope="module")
def h1_candles() -> pd.DataFrame:
    return generate_candles(TimeFrame.H1, 600, seed=42)


@pytest.fixture
def trading_time() -> datetime:
    return datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
