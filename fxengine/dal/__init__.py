"""Candle records, ingestion validation, synthetic data and caching."""

from .cache import TTLCache
from .helpers import load_candles_csv, write_candles_csv
from .schemas import (
    Candle,
    candles_to_frame,
    ensure_candle_frame,
    frame_to_candles,
)
from .synthetic import generate_candles

__all__ = [
    "Candle",
    "TTLCache",
    "candles_to_frame",
    "ensure_candle_frame",
    "frame_to_candles",
    "generate_candles",
    "load_candles_csv",
    "write_candles_csv",
]
