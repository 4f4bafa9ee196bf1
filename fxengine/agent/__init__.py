"""
Trade agent primitives.

This package contains **pure-Python, data-agnostic** logic that turns candle
analysis into trading decisions:

- `multi_timeframe`: weighted trend/signal voting across three timeframes
- `policy`: guardrails (trading hours, daily limits, open positions)
- `decision`: signal fusion producing a `TradingSignal`
- `sizing`: risk-based lot sizing
- `bot`: a stateful bot that runs decisions on a schedule

Design notes
------------
* Keep modules side-effect free (no I/O, no environment reads beyond defaults).
* Prefer **explicit imports** over `from … import *` to keep lints happy.

Typical usage
-------------
    from fxengine.agent.decision import DecisionConfig, decide, gather_inputs
    from fxengine.agent.policy import RiskLimits, TradingState

Public API
----------
This package does not auto re-export symbols from submodules. Import directly
from the desired module (see examples above).
"""

__all__: list[str] = []
