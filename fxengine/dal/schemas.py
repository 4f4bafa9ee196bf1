from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Sequence, Union

import numpy as np
import pandas as pd

from fxengine.core.exceptions import DataValidationError

OHLCV_COLUMNS = ("open", "high", "low", "close", "volume")

_COL_ALIASES = {
    "open": "open",
    "o": "open",
    "high": "high",
    "h": "high",
    "low": "low",
    "l": "low",
    "lo": "low",
    "close": "close",
    "c": "close",
    "adj_close": "close",
    "volume": "volume",
    "vol": "volume",
    "v": "volume",
}

_TIME_COLUMNS = ("timestamp", "time", "date", "datetime")


@dataclass(frozen=True, slots=True)
class Candle:
    """Immutable OHLCV candle."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    def as_dict(self) -> dict:
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return {
            "timestamp": ts.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


CandleInput = Union[Sequence[Candle], pd.DataFrame]


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    mapping = {col: _COL_ALIASES.get(str(col).lower(), col) for col in df.columns}
    return df.rename(columns=mapping)


def validate_candle_frame(df: pd.DataFrame) -> None:
    """Fail loudly on anything that would corrupt downstream metrics.

    Raises:
        DataValidationError: On a non-datetime index, missing OHLC columns,
            non-finite prices, ``high < low``, or timestamps that are not
            strictly ascending.
    """
    if not isinstance(df.index, pd.DatetimeIndex):
        raise DataValidationError("candle frame must be indexed by a DatetimeIndex")
    missing = [c for c in ("open", "high", "low", "close") if c not in df.columns]
    if missing:
        raise DataValidationError(f"candle frame missing columns: {missing}")
    if df.index.has_duplicates:
        dupes = df.index[df.index.duplicated()].unique()
        raise DataValidationError(f"duplicate candle timestamps: {list(dupes[:3])}")
    if len(df) > 1 and not df.index.is_monotonic_increasing:
        raise DataValidationError("candle timestamps must be strictly ascending")
    prices = df[["open", "high", "low", "close"]].to_numpy(dtype=float)
    if not np.isfinite(prices).all():
        raise DataValidationError("candle prices must be finite")
    bad = df.index[df["high"].to_numpy(dtype=float) < df["low"].to_numpy(dtype=float)]
    if len(bad):
        raise DataValidationError(f"candle high below low at {bad[0]}")


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Build a validated OHLCV frame from candle records."""
    rows = [
        {
            "timestamp": c.timestamp,
            "open": float(c.open),
            "high": float(c.high),
            "low": float(c.low),
            "close": float(c.close),
            "volume": float(c.volume),
        }
        for c in candles
    ]
    if not rows:
        empty = pd.DataFrame(columns=list(OHLCV_COLUMNS), dtype=float)
        empty.index = pd.DatetimeIndex([], name="timestamp")
        return empty
    df = pd.DataFrame(rows).set_index("timestamp")
    df.index = pd.DatetimeIndex(df.index, name="timestamp")
    validate_candle_frame(df)
    return df


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    frame = ensure_candle_frame(df)
    return [
        Candle(
            timestamp=ts.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for ts, row in zip(frame.index, frame.itertuples(index=False))
    ]


def ensure_candle_frame(candles: CandleInput) -> pd.DataFrame:
    """Normalise candles (records or a frame) into a validated OHLCV frame.

    The returned frame is a copy; callers may not rely on identity with
    the input.
    """
    if not isinstance(candles, pd.DataFrame):
        return candles_to_frame(candles)

    df = _standardize_columns(candles)
    if not isinstance(df.index, pd.DatetimeIndex):
        time_col = next((c for c in _TIME_COLUMNS if c in df.columns), None)
        if time_col is None:
            raise DataValidationError("candle frame has no timestamp index or column")
        df = df.set_index(pd.DatetimeIndex(pd.to_datetime(df[time_col])))
        df = df.drop(columns=[time_col])
    if "volume" not in df.columns:
        df = df.assign(volume=0.0)
    validate_candle_frame(df)
    out = df.loc[:, list(OHLCV_COLUMNS)].astype(float).copy()
    out.index.name = "timestamp"
    return out


__all__ = [
    "Candle",
    "CandleInput",
    "OHLCV_COLUMNS",
    "validate_candle_frame",
    "candles_to_frame",
    "frame_to_candles",
    "ensure_candle_frame",
]
