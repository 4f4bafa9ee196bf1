"""Backtesting engine and strategy evaluation tools for fxengine.
Provides the bar-by-bar simulator, ledger metrics and parameter sweeps.
"""
