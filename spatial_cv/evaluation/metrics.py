"""
Per-fold performance metrics.

Implements:
- ROC AUC: Area under the ROC curve (default)
- Brier: Mean squared error of probability predictions
- Accuracy: Fraction correct at a 0.5 cutoff

Every metric has the signature metric(y_true, y_score) -> float and a valid
range of [0, 1].
"""

from __future__ import annotations

import math
from typing import Callable, Dict, List, Union

import numpy as np
from sklearn.metrics import accuracy_score, brier_score_loss, roc_auc_score

from spatial_cv.errors import MetricRangeError, UndefinedMetricError

Metric = Callable[[np.ndarray, np.ndarray], float]


def _require_both_classes(y_true: np.ndarray, metric_name: str) -> None:
    classes = np.unique(y_true)
    if len(classes) < 2:
        raise UndefinedMetricError(
            f"{metric_name} is undefined for a test fold with a single class "
            f"({classes.tolist()})",
            details={"n_test": int(len(y_true))},
        )


def compute_auc(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """Compute ROC AUC score.

    Equals the probability that a random positive is scored above a random
    negative, with ties counted as one half.

    Args:
        y_true: True binary labels (0/1).
        y_score: Predicted score for class 1.

    Returns:
        AUC score in [0, 1].

    Raises:
        UndefinedMetricError: If y_true holds a single class.
    """
    y_true = np.asarray(y_true)
    _require_both_classes(y_true, "AUC")
    return float(roc_auc_score(y_true, np.asarray(y_score, dtype=np.float64)))


def compute_brier(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """Compute Brier score (mean squared error of probabilities).

    Lower is better. Perfect calibration = 0.

    Args:
        y_true: True binary labels (0/1).
        y_score: Predicted probability of class 1.

    Returns:
        Brier score in [0, 1].
    """
    return float(brier_score_loss(np.asarray(y_true), np.asarray(y_score, dtype=np.float64)))


def compute_accuracy(y_true: np.ndarray, y_score: np.ndarray, threshold: float = 0.5) -> float:
    """Fraction of observations classified correctly at threshold."""
    y_pred = (np.asarray(y_score, dtype=np.float64) >= threshold).astype(int)
    return float(accuracy_score(np.asarray(y_true), y_pred))


METRICS: Dict[str, Metric] = {
    "auc": compute_auc,
    "brier": compute_brier,
    "accuracy": compute_accuracy,
}


def get_metric(metric: Union[str, Metric]) -> Metric:
    """Resolve a metric name (or pass a callable through)."""
    if callable(metric):
        return metric
    try:
        return METRICS[metric.lower()]
    except KeyError:
        raise ValueError(f"Unknown metric: {metric}. Supported: {list(METRICS.keys())}") from None


def metric_name(metric: Union[str, Metric]) -> str:
    """Human-readable name of a metric."""
    if isinstance(metric, str):
        return metric.lower()
    for name, func in METRICS.items():
        if func is metric:
            return name
    return getattr(metric, "__name__", type(metric).__name__)


def validate_score_range(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Check a metric value lies in [low, high].

    A value outside the range means the metric implementation is wrong, not
    that the data is unusual, so this is never treated as a per-fold error.

    Raises:
        MetricRangeError: If value is NaN or outside [low, high].
    """
    value = float(value)
    if math.isnan(value) or value < low or value > high:
        raise MetricRangeError(
            f"Metric value {value} outside valid range [{low}, {high}]",
            details={"value": value},
        )
    return value


def compute_metrics(
    y_true: np.ndarray,
    y_score: np.ndarray,
    metrics: List[str],
) -> Dict[str, float]:
    """Compute multiple evaluation metrics.

    Args:
        y_true: True binary labels (0/1).
        y_score: Predicted score for class 1.
        metrics: List of metric names. Supported: "auc", "brier", "accuracy".

    Returns:
        Dictionary mapping metric name to validated value.
    """
    return {
        name.lower(): validate_score_range(get_metric(name)(y_true, y_score))
        for name in metrics
    }
