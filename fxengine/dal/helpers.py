from __future__ import annotations

from pathlib import Path
from typing import Union

import pandas as pd
from loguru import logger

from fxengine.dal.schemas import ensure_candle_frame

PathLike = Union[str, Path]


def load_candles_csv(path: PathLike) -> pd.DataFrame:
    """
    Read an OHLCV CSV into a validated candle frame.

    The file needs a time column (``timestamp``, ``time``, ``date`` or
    ``datetime``) and open/high/low/close columns; volume is optional.
    Timestamps are parsed as UTC.
    """
    path = Path(path)
    raw = pd.read_csv(path)
    time_col = next(
        (c for c in raw.columns if str(c).lower() in ("timestamp", "time", "date", "datetime")),
        None,
    )
    if time_col is not None:
        raw[time_col] = pd.to_datetime(raw[time_col], utc=True)
        raw = raw.rename(columns={time_col: "timestamp"})
    frame = ensure_candle_frame(raw)
    logger.debug("[dal] loaded candles path={} rows={}", path, len(frame))
    return frame


def write_candles_csv(frame: pd.DataFrame, path: PathLike) -> Path:
    """Write a candle frame with a ``timestamp`` column; returns the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ensure_candle_frame(frame).reset_index().to_csv(path, index=False)
    return path


__all__ = ["load_candles_csv", "write_candles_csv"]
