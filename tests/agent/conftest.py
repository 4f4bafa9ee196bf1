from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from fxengine.core.models import SignalType, TrendDirection, Volatility
from fxengine.features.indicators import (
    ATRReading,
    BollingerReading,
    Crossover,
    IndicatorSnapshot,
    MACDReading,
    MovingAverages,
    StochasticReading,
)
from fxengine.features.patterns import DetectedPattern, PatternType
from fxengine.probability.pipeline import PredictionHorizon, PredictionResult


@pytest.fixture
def make_snapshot():
    def _make(
        close: float = 1.1,
        atr: Optional[float] = 0.001,
        rsi: Optional[float] = 50.0,
        crossover: Crossover = Crossover.NONE,
    ) -> IndicatorSnapshot:
        return IndicatorSnapshot(
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            close=close,
            rsi=rsi,
            rsi_signal=SignalType.HOLD,
            macd=MACDReading(0.0, 0.0, 0.0, crossover),
            bollinger=BollingerReading(None, None, None, None, None),
            stochastic=StochasticReading(None, None),
            atr=ATRReading(atr, Volatility.LOW if atr else None),
            moving_averages=MovingAverages(None, None, None, None, None, TrendDirection.SIDEWAYS),
            pivots=None,
            fibonacci=None,
        )

    return _make


@pytest.fixture
def make_pattern():
    def _make(signal: SignalType = SignalType.BUY, confidence: float = 85.0) -> DetectedPattern:
        kind = PatternType.DOUBLE_BOTTOM if signal is SignalType.BUY else PatternType.DOUBLE_TOP
        return DetectedPattern(kind, 0, 10, confidence, signal, 1.12, 1.09, ())

    return _make


@pytest.fixture
def make_prediction():
    def _make(
        direction: TrendDirection = TrendDirection.BULLISH, confidence: float = 70.0
    ) -> PredictionResult:
        return PredictionResult(
            direction=direction,
            current_price=1.1,
            predicted_price=1.101,
            predicted_return=0.001,
            price_change_percent=0.1,
            confidence=confidence,
            horizon=PredictionHorizon.MEDIUM,
            feature_importance=(),
            model_used="ensemble_lr_knn",
        )

    return _make
