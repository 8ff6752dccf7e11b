"""
Model adapter contract used by the resampling runner.

An adapter turns a training split into an opaque fitted state and scores a
test split with it. Adapters keep no per-fold state on self, so one adapter
instance can serve all folds, including concurrently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np
from sklearn.base import clone

from spatial_cv.errors import ModelFitError


def check_training_data(X: np.ndarray, y: np.ndarray) -> None:
    """Reject training splits no classifier can be fit on.

    Raises:
        ModelFitError: On empty data, non-finite values or a single class.
    """
    if len(y) == 0:
        raise ModelFitError("Training split is empty")
    if len(X) != len(y):
        raise ModelFitError(f"Shape mismatch: X has {len(X)} rows, y has {len(y)}")
    if not np.all(np.isfinite(X)):
        raise ModelFitError("Training predictors contain non-finite values")
    classes = np.unique(y)
    if len(classes) < 2:
        raise ModelFitError(
            f"Training split contains a single class ({classes.tolist()})",
            suggestion="Spatial folds can concentrate one class; use fewer folds.",
        )


class ModelAdapter(ABC):
    """Fit/predict capability for a binary classifier."""

    name: str = "model"

    @abstractmethod
    def fit(self, X: np.ndarray, y: np.ndarray) -> Any:
        """Fit on a training split.

        Args:
            X: Predictor matrix (n_samples, n_features).
            y: Binary response (0/1).

        Returns:
            Opaque fitted state passed back to predict().

        Raises:
            ModelFitError: If the split cannot be fit.
        """

    @abstractmethod
    def predict(self, state: Any, X: np.ndarray) -> np.ndarray:
        """Score a test split.

        Args:
            state: Value returned by fit().
            X: Predictor matrix (n_samples, n_features).

        Returns:
            Real-valued scores, shape (n_samples,). Probabilistic
            classifiers return P(y=1) in [0, 1].
        """


class SklearnClassifierAdapter(ModelAdapter):
    """Adapter for any scikit-learn classifier with predict_proba.

    The template estimator is cloned for every fit, so it is never mutated.
    """

    def __init__(self, estimator: Any, name: str | None = None):
        if not hasattr(estimator, "predict_proba"):
            raise TypeError(f"{type(estimator).__name__} has no predict_proba")
        self.estimator = estimator
        self.name = name or type(estimator).__name__

    def fit(self, X: np.ndarray, y: np.ndarray) -> Any:
        check_training_data(X, y)
        model = clone(self.estimator)
        try:
            model.fit(X, y)
        except (ValueError, np.linalg.LinAlgError) as e:
            raise ModelFitError(f"{self.name} failed to fit: {e}") from e
        return model

    def predict(self, state: Any, X: np.ndarray) -> np.ndarray:
        proba = state.predict_proba(X)
        # Column of the positive class
        pos = list(state.classes_).index(1)
        return proba[:, pos]
