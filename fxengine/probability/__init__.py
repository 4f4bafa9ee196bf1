"""In-process price prediction: feature extraction, models and pipeline."""

from .pipeline import (
    PredictionHorizon,
    PredictionResult,
    generate_predictions,
    predict_price,
)

__all__ = [
    "PredictionHorizon",
    "PredictionResult",
    "generate_predictions",
    "predict_price",
]
