from __future__ import annotations

import numpy as np
import pytest

from fxengine.core.models import SignalType, TrendDirection
from fxengine.dal.cache import TTLCache
from fxengine.probability.features import FEATURE_NAMES, extract_features, forward_returns
from fxengine.probability.models import KNNDirectionClassifier, LinearRegressionGD, direction_labels
from fxengine.probability.pipeline import (
    MODEL_ENSEMBLE,
    MODEL_INSUFFICIENT,
    PredictionHorizon,
    generate_predictions,
    predict_price,
)


def test_feature_matrix_shape(h1_candles):
    feats = extract_features(h1_candles)

    assert tuple(feats.columns) == FEATURE_NAMES
    assert len(feats) == len(h1_candles) - 20
    assert feats.index[0] == h1_candles.index[20]
    assert feats["Is Bullish"].isin([0.0, 1.0]).all()


def test_forward_returns_look_ahead(make_linear):
    df = make_linear(10, slope=0.1)
    fwd = forward_returns(df, 2)
    assert fwd.iloc[0] == pytest.approx(1.2 / 1.0 - 1.0)
    assert fwd.iloc[-2:].isna().all()


def test_insufficient_history_is_sideways(h1_candles):
    result = predict_price(h1_candles.iloc[:60], PredictionHorizon.SHORT)

    assert result.model_used == MODEL_INSUFFICIENT
    assert result.direction is TrendDirection.SIDEWAYS
    assert result.signal is SignalType.HOLD
    assert result.confidence == 30.0
    assert result.predicted_price == result.current_price


def test_prediction_is_deterministic_and_bounded(h1_candles):
    a = predict_price(h1_candles, PredictionHorizon.MEDIUM, iterations=200)
    b = predict_price(h1_candles, PredictionHorizon.MEDIUM, iterations=200)

    assert a == b
    assert a.model_used == MODEL_ENSEMBLE
    assert 0.0 <= a.confidence <= 95.0
    assert a.predicted_price == pytest.approx(a.current_price * (1 + a.predicted_return))
    assert len(a.feature_importance) == 5
    weights = [f.weight for f in a.feature_importance]
    assert weights == sorted(weights, reverse=True)
    assert a.validation_accuracy is not None and 0.0 <= a.validation_accuracy <= 100.0


def test_cache_reuses_result(h1_candles):
    cache = TTLCache(60.0)

    first = predict_price(h1_candles, PredictionHorizon.SHORT, cache=cache, iterations=50)
    second = predict_price(h1_candles, PredictionHorizon.SHORT, cache=cache, iterations=50)

    assert first is second
    assert cache.hits == 1


def test_generate_predictions_covers_horizons(h1_candles):
    preds = generate_predictions(h1_candles.iloc[:60])
    assert set(preds) == {"short", "medium", "long"}
    assert preds["long"].horizon is PredictionHorizon.LONG


def test_linear_regression_recovers_slope():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(200, 2))
    y = 0.5 * X[:, 0] - 0.25 * X[:, 1] + 0.1

    model = LinearRegressionGD(learning_rate=0.1, iterations=2000).fit(X, y)

    assert model.weights == pytest.approx([0.5, -0.25], abs=1e-3)
    assert model.bias == pytest.approx(0.1, abs=1e-3)


def test_knn_majority_vote():
    X = np.array([[0.0], [0.1], [0.2], [5.0], [5.1]])
    returns = np.array([0.01, 0.01, -0.01, -0.01, -0.01])

    knn = KNNDirectionClassifier(k=3).fit(X, returns)

    assert knn.predict_one(np.array([0.05])) == 1
    assert knn.predict_one(np.array([5.05])) == -1
    assert direction_labels([0.00005, -0.01, 0.01]).tolist() == [0, -1, 1]
