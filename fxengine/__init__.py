"""fxengine: deterministic forex strategy evaluation.

Indicators, pattern and multi-timeframe analysis, a small in-process
predictor, signal fusion and a bar-by-bar backtest simulator. All
components are in-memory computations over candle series.
"""

__version__ = "0.4.0"
