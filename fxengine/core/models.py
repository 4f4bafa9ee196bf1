"""Closed enums and the fused trading signal shared across components."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Tuple


class SignalType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"

    @property
    def direction(self) -> int:
        """+1 for buy, -1 for sell, 0 for hold."""
        return _SIGNAL_DIRECTION[self]

    def opposite(self) -> "SignalType":
        return _SIGNAL_OPPOSITE[self]

    @classmethod
    def from_direction(cls, value: float) -> "SignalType":
        if value > 0:
            return cls.BUY
        if value < 0:
            return cls.SELL
        return cls.HOLD


_SIGNAL_DIRECTION = {SignalType.BUY: 1, SignalType.SELL: -1, SignalType.HOLD: 0}
_SIGNAL_OPPOSITE = {
    SignalType.BUY: SignalType.SELL,
    SignalType.SELL: SignalType.BUY,
    SignalType.HOLD: SignalType.HOLD,
}


class TrendDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    SIDEWAYS = "sideways"

    def to_signal(self) -> SignalType:
        return _TREND_SIGNAL[self]


_TREND_SIGNAL = {
    TrendDirection.BULLISH: SignalType.BUY,
    TrendDirection.BEARISH: SignalType.SELL,
    TrendDirection.SIDEWAYS: SignalType.HOLD,
}


class SignalStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"

    @classmethod
    def from_confidence(cls, confidence: float) -> "SignalStrength":
        if confidence >= 80:
            return cls.VERY_STRONG
        if confidence >= 70:
            return cls.STRONG
        if confidence >= 60:
            return cls.MODERATE
        return cls.WEAK


class Volatility(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Alignment(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    CONFLICTING = "conflicting"


class SignalStatus(str, Enum):
    ACTIVE = "active"
    EXECUTED = "executed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TimeFrame(str, Enum):
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1w"

    @property
    def minutes(self) -> int:
        return _TIMEFRAME_MINUTES[self]

    @property
    def pandas_rule(self) -> str:
        """Resampling rule understood by ``DataFrame.resample``."""
        return _TIMEFRAME_RULES[self]


_TIMEFRAME_MINUTES = {
    TimeFrame.M1: 1,
    TimeFrame.M5: 5,
    TimeFrame.M15: 15,
    TimeFrame.M30: 30,
    TimeFrame.H1: 60,
    TimeFrame.H4: 240,
    TimeFrame.D1: 1440,
    TimeFrame.W1: 10080,
}

_TIMEFRAME_RULES = {
    TimeFrame.M1: "1min",
    TimeFrame.M5: "5min",
    TimeFrame.M15: "15min",
    TimeFrame.M30: "30min",
    TimeFrame.H1: "1h",
    TimeFrame.H4: "4h",
    TimeFrame.D1: "1D",
    TimeFrame.W1: "7D",
}


@dataclass(frozen=True, slots=True)
class TradingSignal:
    """Fused decision emitted by the decision engine.

    Only ``status`` is expected to change after emission, and only through
    :meth:`with_status`, which returns a new signal.
    """

    pair: str
    signal_type: SignalType
    strength: SignalStrength
    entry_price: float
    stop_loss: float
    take_profit: Tuple[float, ...]
    confidence: float
    reasoning: Tuple[str, ...]
    timeframe: TimeFrame
    timestamp: datetime
    risk_reward_ratio: float = 1.5
    status: SignalStatus = SignalStatus.ACTIVE

    def with_status(self, status: SignalStatus) -> "TradingSignal":
        return replace(self, status=status)

    def as_dict(self) -> dict:
        return {
            "pair": self.pair,
            "type": self.signal_type.value,
            "strength": self.strength.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": list(self.take_profit),
            "confidence": self.confidence,
            "reasoning": list(self.reasoning),
            "timeframe": self.timeframe.value,
            "timestamp": self.timestamp.isoformat(),
            "risk_reward_ratio": self.risk_reward_ratio,
            "status": self.status.value,
        }


__all__ = [
    "SignalType",
    "TrendDirection",
    "SignalStrength",
    "Volatility",
    "Alignment",
    "SignalStatus",
    "TimeFrame",
    "TradingSignal",
]
