from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from fxengine.core.models import SignalType, TrendDirection
from fxengine.core.numeric import round_half_up
from fxengine.dal.cache import TTLCache
from fxengine.dal.schemas import CandleInput, ensure_candle_frame
from fxengine.probability.features import FEATURE_NAMES, extract_features, forward_returns
from fxengine.probability.models import KNNDirectionClassifier, LinearRegressionGD

MIN_TRAINING_ROWS = 50
TRAIN_FRACTION = 0.8
LR_WEIGHT = 0.6
KNN_WEIGHT = 0.4
KNN_RETURN_SCALE = 0.001
DIRECTION_THRESHOLD = 0.0005
IMPACT_THRESHOLD = 0.1
MODEL_ENSEMBLE = "ensemble_lr_knn"
MODEL_INSUFFICIENT = "insufficient_data"


class PredictionHorizon(str, Enum):
    SHORT = "1h"
    MEDIUM = "4h"
    LONG = "24h"

    @property
    def bars(self) -> int:
        return {"1h": 1, "4h": 4, "24h": 24}[self.value]


class FeatureImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass(frozen=True, slots=True)
class FeatureImportance:
    name: str
    value: float
    impact: FeatureImpact
    weight: float


@dataclass(frozen=True, slots=True)
class PredictionResult:
    direction: TrendDirection
    current_price: float
    predicted_price: float
    predicted_return: float
    price_change_percent: float
    confidence: float
    horizon: PredictionHorizon
    feature_importance: Tuple[FeatureImportance, ...]
    model_used: str
    training_rows: int = 0
    validation_accuracy: Optional[float] = None

    @property
    def signal(self) -> SignalType:
        return self.direction.to_signal()


def _insufficient(price: float, horizon: PredictionHorizon, rows: int) -> PredictionResult:
    return PredictionResult(
        direction=TrendDirection.SIDEWAYS,
        current_price=price,
        predicted_price=price,
        predicted_return=0.0,
        price_change_percent=0.0,
        confidence=30.0,
        horizon=horizon,
        feature_importance=(),
        model_used=MODEL_INSUFFICIENT,
        training_rows=rows,
    )


def _direction(predicted_return: float) -> TrendDirection:
    if predicted_return > DIRECTION_THRESHOLD:
        return TrendDirection.BULLISH
    if predicted_return < -DIRECTION_THRESHOLD:
        return TrendDirection.BEARISH
    return TrendDirection.SIDEWAYS


def _confidence(lr_pred: float, knn_dir: int, ensemble: float) -> float:
    conf = 50.0
    if int(np.sign(lr_pred)) == knn_dir:
        conf += 20.0
    conf += min(abs(ensemble) * 1000.0, 20.0)
    return float(round_half_up(min(conf, 95.0)))


def _importance(weights: np.ndarray, current: np.ndarray) -> Tuple[FeatureImportance, ...]:
    rows = []
    for name, w, v in zip(FEATURE_NAMES, weights, current):
        if w > IMPACT_THRESHOLD:
            impact = FeatureImpact.POSITIVE
        elif w < -IMPACT_THRESHOLD:
            impact = FeatureImpact.NEGATIVE
        else:
            impact = FeatureImpact.NEUTRAL
        rows.append(FeatureImportance(name=name, value=float(v), impact=impact, weight=abs(float(w))))
    rows.sort(key=lambda f: f.weight, reverse=True)
    return tuple(rows[:5])


def _cache_key(df: pd.DataFrame, horizon: PredictionHorizon) -> tuple:
    return (
        horizon.value,
        len(df),
        df.index[0],
        df.index[-1],
        float(df["close"].iloc[-1]),
    )


def predict_price(
    candles: CandleInput,
    horizon: PredictionHorizon = PredictionHorizon.SHORT,
    *,
    cache: Optional[TTLCache] = None,
    iterations: int = 500,
) -> PredictionResult:
    """
    Directional price prediction from a linear-regression + KNN ensemble.

    Both models are trained from scratch on this call: features are
    z-scored with statistics from the first 80% of usable rows, the model
    fits on those rows and the remaining 20% only feed
    ``validation_accuracy``. Fewer than 50 usable rows yields a sideways
    ``insufficient_data`` result with confidence 30.

    Args:
        candles (CandleInput): Ordered candles.
        horizon (PredictionHorizon): Forward bars to predict.
        cache (Optional[TTLCache]): Reuses the result for an identical
            candle window and horizon.
        iterations (int): Gradient-descent iterations.

    Returns:
        PredictionResult: The prediction.
    """
    df = ensure_candle_frame(candles)
    if df.empty:
        return _insufficient(0.0, horizon, 0)
    if cache is not None:
        return cache.get_or_compute(
            _cache_key(df, horizon), lambda: _predict(df, horizon, iterations)
        )
    return _predict(df, horizon, iterations)


def _predict(df: pd.DataFrame, horizon: PredictionHorizon, iterations: int) -> PredictionResult:
    price = float(df["close"].iloc[-1])
    features = extract_features(df)
    labels = forward_returns(df, horizon.bars).loc[features.index]

    usable = features.notna().all(axis=1) & labels.notna()
    X = features[usable].to_numpy(dtype=float)
    y = labels[usable].to_numpy(dtype=float)
    if len(X) < MIN_TRAINING_ROWS:
        logger.debug(
            "[predict] insufficient rows horizon={} rows={} min={}",
            horizon.value,
            len(X),
            MIN_TRAINING_ROWS,
        )
        return _insufficient(price, horizon, len(X))

    split = int(len(X) * TRAIN_FRACTION)
    X_train, y_train = X[:split], y[:split]
    X_test, y_test = X[split:], y[split:]

    mean = X_train.mean(axis=0)
    std = X_train.std(axis=0)
    std[std == 0] = 1.0

    def _norm(a: np.ndarray) -> np.ndarray:
        return (a - mean) / std

    lr = LinearRegressionGD(iterations=iterations).fit(_norm(X_train), y_train)
    knn = KNNDirectionClassifier().fit(_norm(X_train), y_train)

    current = features.iloc[-1].to_numpy(dtype=float)
    current = np.nan_to_num(current, nan=0.0, posinf=0.0, neginf=0.0)
    current_n = _norm(current)

    lr_pred = float(lr.predict(current_n[None, :])[0])
    knn_dir = knn.predict_one(current_n)
    ensemble = LR_WEIGHT * lr_pred + KNN_WEIGHT * (knn_dir * KNN_RETURN_SCALE)

    accuracy: Optional[float] = None
    if len(X_test):
        test_n = _norm(X_test)
        test_pred = LR_WEIGHT * lr.predict(test_n) + KNN_WEIGHT * knn.predict(test_n) * KNN_RETURN_SCALE
        accuracy = float((np.sign(test_pred) == np.sign(y_test)).mean() * 100.0)

    result = PredictionResult(
        direction=_direction(ensemble),
        current_price=price,
        predicted_price=price * (1.0 + ensemble),
        predicted_return=ensemble,
        price_change_percent=ensemble * 100.0,
        confidence=_confidence(lr_pred, knn_dir, ensemble),
        horizon=horizon,
        feature_importance=_importance(lr.weights, current),
        model_used=MODEL_ENSEMBLE,
        training_rows=split,
        validation_accuracy=accuracy,
    )
    logger.debug(
        "[predict] horizon={} direction={} return={:.6f} confidence={}",
        horizon.value,
        result.direction.value,
        ensemble,
        result.confidence,
    )
    return result


def generate_predictions(
    candles: CandleInput, *, cache: Optional[TTLCache] = None
) -> Dict[str, PredictionResult]:
    """Short (1h), medium (4h) and long (24h) predictions for one series."""
    df = ensure_candle_frame(candles)
    return {
        "short": predict_price(df, PredictionHorizon.SHORT, cache=cache),
        "medium": predict_price(df, PredictionHorizon.MEDIUM, cache=cache),
        "long": predict_price(df, PredictionHorizon.LONG, cache=cache),
    }


__all__ = [
    "PredictionHorizon",
    "FeatureImpact",
    "FeatureImportance",
    "PredictionResult",
    "predict_price",
    "generate_predictions",
]
