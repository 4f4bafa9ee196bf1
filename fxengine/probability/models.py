"""Small in-process models trained from scratch on every prediction call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass(slots=True)
class LinearRegressionGD:
    """
    Linear regression fitted by batch gradient descent on mean squared error.

    Attributes:
        learning_rate (float): Step size.
        iterations (int): Number of full-batch updates.
    """

    learning_rate: float = 0.01
    iterations: int = 500
    weights: Optional[np.ndarray] = field(default=None, repr=False)
    bias: float = 0.0

    def fit(self, X: np.ndarray, y: np.ndarray) -> "LinearRegressionGD":
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        n, m = X.shape
        if n == 0:
            raise ValueError("cannot fit on an empty matrix")
        w = np.zeros(m)
        b = 0.0
        for _ in range(self.iterations):
            err = X @ w + b - y
            w -= self.learning_rate * (X.T @ err) / n
            b -= self.learning_rate * float(err.sum()) / n
        self.weights = w
        self.bias = b
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        if self.weights is None:
            raise RuntimeError("model is not fitted")
        return np.asarray(X, dtype=float) @ self.weights + self.bias


def direction_labels(returns: np.ndarray, threshold: float = 1e-4) -> np.ndarray:
    """+1 above ``threshold``, -1 below ``-threshold``, 0 in between."""
    r = np.asarray(returns, dtype=float)
    out = np.zeros(len(r), dtype=int)
    out[r > threshold] = 1
    out[r < -threshold] = -1
    return out


@dataclass(slots=True)
class KNNDirectionClassifier:
    """Majority vote of the ``k`` nearest training rows (Euclidean)."""

    k: int = 5
    threshold: float = 1e-4
    _X: Optional[np.ndarray] = field(default=None, repr=False)
    _labels: Optional[np.ndarray] = field(default=None, repr=False)

    def fit(self, X: np.ndarray, returns: np.ndarray) -> "KNNDirectionClassifier":
        self._X = np.asarray(X, dtype=float)
        self._labels = direction_labels(returns, self.threshold)
        return self

    def predict_one(self, x: np.ndarray) -> int:
        if self._X is None or self._labels is None:
            raise RuntimeError("model is not fitted")
        dist = np.sqrt(((self._X - np.asarray(x, dtype=float)) ** 2).sum(axis=1))
        nearest = self._labels[np.argsort(dist, kind="stable")[: self.k]]
        counts = {label: int((nearest == label).sum()) for label in (-1, 0, 1)}
        top = max(counts.values())
        # Ties go to whichever tied label has the closest neighbour.
        for label in nearest:
            if counts[int(label)] == top:
                return int(label)
        return 0

    def predict(self, X: np.ndarray) -> np.ndarray:
        return np.array([self.predict_one(row) for row in np.asarray(X, dtype=float)], dtype=int)


__all__ = ["LinearRegressionGD", "KNNDirectionClassifier", "direction_labels"]
