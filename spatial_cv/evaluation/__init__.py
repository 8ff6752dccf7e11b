"""Metrics and aggregation of resampling scores."""

from spatial_cv.evaluation.aggregation import (
    ComparisonResult,
    ScoreRecord,
    ScoreSummary,
    UnitFailure,
    compare,
    failures_to_frame,
    records_to_frame,
    repetition_means,
    summarize,
)
from spatial_cv.evaluation.metrics import (
    METRICS,
    compute_accuracy,
    compute_auc,
    compute_brier,
    compute_metrics,
    get_metric,
    validate_score_range,
)

__all__ = [
    "ComparisonResult",
    "ScoreRecord",
    "ScoreSummary",
    "UnitFailure",
    "compare",
    "failures_to_frame",
    "records_to_frame",
    "repetition_means",
    "summarize",
    "METRICS",
    "compute_accuracy",
    "compute_auc",
    "compute_brier",
    "compute_metrics",
    "get_metric",
    "validate_score_range",
]
