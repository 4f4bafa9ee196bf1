"""
fxengine feature engineering package

This package includes:
- `indicators`: per-bar technical indicators, levels and snapshots
- `patterns`: chart and candlestick pattern recognition
- `mtf_aggregate`: resampling one candle series into coarser timeframes
- `correlation`: return correlation between currency pairs

Usage:
    from fxengine.features import indicators, patterns

All modules under this package are pure functions of their inputs
(no I/O, no hidden caches), so results can be recomputed for any window.
"""

from . import correlation, indicators, mtf_aggregate, patterns

__all__ = ["correlation", "indicators", "mtf_aggregate", "patterns"]
