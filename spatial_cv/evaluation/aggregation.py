"""
Aggregation of per-fold scores across a resampling run.

Score records are never aggregated away: summaries keep the full
distribution so two runs (e.g. spatial vs random folds) can be compared
beyond their means.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from spatial_cv.evaluation.metrics import validate_score_range


@dataclass(frozen=True)
class ScoreRecord:
    """Metric value of one executed (repetition, fold) unit.

    Attributes:
        repetition: Repetition index.
        fold: Fold index within the repetition.
        value: Metric value on the test fold.
        n_train: Training observations.
        n_test: Test observations.
        train_value: Metric on the training fold, if requested.
    """

    repetition: int
    fold: int
    value: float
    n_train: int = 0
    n_test: int = 0
    train_value: Optional[float] = None


@dataclass(frozen=True)
class UnitFailure:
    """A unit excluded from aggregation.

    A repetition whose partitioning failed contributes one failure per fold.
    status is "failed" for errors and "skipped" for cancelled or timed-out units.
    """

    repetition: int
    fold: int
    error_type: str
    message: str
    status: str = "failed"


@dataclass
class ScoreSummary:
    """Summary statistics over the successful units of a run."""

    mean: float
    std: float
    median: float
    q025: float
    q975: float
    min: float
    max: float
    n_scored: int
    n_failed: int = 0
    n_skipped: int = 0
    distribution: np.ndarray = field(default_factory=lambda: np.empty(0), repr=False)

    @property
    def n_excluded(self) -> int:
        """Units left out of the statistics."""
        return self.n_failed + self.n_skipped

    def to_dict(self, include_distribution: bool = False) -> dict:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d.pop("distribution")
        if include_distribution:
            d["distribution"] = self.distribution.tolist()
        return d


def _summarize_array(arr: np.ndarray) -> Dict[str, float]:
    if len(arr) == 0:
        nan = float("nan")
        return {"mean": nan, "std": nan, "median": nan, "q025": nan, "q975": nan, "min": nan, "max": nan}
    return {
        "mean": float(np.mean(arr)),
        "std": float(np.std(arr, ddof=1)) if len(arr) > 1 else 0.0,
        "median": float(np.median(arr)),
        "q025": float(np.percentile(arr, 2.5)),
        "q975": float(np.percentile(arr, 97.5)),
        "min": float(np.min(arr)),
        "max": float(np.max(arr)),
    }


def summarize(
    records: Sequence[ScoreRecord],
    n_failed: int = 0,
    n_skipped: int = 0,
) -> ScoreSummary:
    """Summarize score records.

    Args:
        records: Score records of successful units.
        n_failed: Units excluded because of errors.
        n_skipped: Units excluded because of cancellation or deadline.

    Returns:
        ScoreSummary. With no records, statistics are NaN and n_scored is 0.

    Raises:
        MetricRangeError: If any record lies outside [0, 1].
    """
    values = np.array([validate_score_range(r.value) for r in records], dtype=np.float64)
    return ScoreSummary(
        **_summarize_array(values),
        n_scored=len(values),
        n_failed=n_failed,
        n_skipped=n_skipped,
        distribution=values,
    )


def repetition_means(records: Sequence[ScoreRecord]) -> pd.Series:
    """Mean score per repetition, indexed by repetition."""
    if not records:
        return pd.Series(dtype=np.float64, name="value")
    df = records_to_frame(records)
    return df.groupby("repetition")["value"].mean()


def records_to_frame(records: Sequence[ScoreRecord]) -> pd.DataFrame:
    """Score records as a DataFrame, one row per unit."""
    columns = ["repetition", "fold", "value", "n_train", "n_test", "train_value"]
    return pd.DataFrame([asdict(r) for r in records], columns=columns)


def failures_to_frame(failures: Sequence[UnitFailure]) -> pd.DataFrame:
    """Unit failures as a DataFrame, one row per excluded unit."""
    columns = ["repetition", "fold", "error_type", "message", "status"]
    return pd.DataFrame([asdict(f) for f in failures], columns=columns)


@dataclass
class ComparisonResult:
    """Two score distributions side by side.

    Attributes:
        label_a, label_b: Names of the compared runs.
        summary_a, summary_b: Per-run summaries (raw distributions included).
        mean_difference: mean(a) - mean(b).
        statistic: Mann-Whitney U statistic.
        p_value: Two-sided p-value of the Mann-Whitney U test.
    """

    label_a: str
    label_b: str
    summary_a: ScoreSummary
    summary_b: ScoreSummary
    mean_difference: float
    statistic: float
    p_value: float

    def to_dict(self) -> dict:
        return {
            "label_a": self.label_a,
            "label_b": self.label_b,
            self.label_a: self.summary_a.to_dict(),
            self.label_b: self.summary_b.to_dict(),
            "mean_difference": self.mean_difference,
            "mann_whitney_u": self.statistic,
            "p_value": self.p_value,
        }

    def to_frame(self) -> pd.DataFrame:
        """Long table of both distributions (run, value), e.g. for boxplots."""
        return pd.DataFrame(
            {
                "run": [self.label_a] * self.summary_a.n_scored
                + [self.label_b] * self.summary_b.n_scored,
                "value": np.concatenate([self.summary_a.distribution, self.summary_b.distribution]),
            }
        )


def compare(
    a: Sequence[ScoreRecord],
    b: Sequence[ScoreRecord],
    label_a: str = "a",
    label_b: str = "b",
) -> ComparisonResult:
    """Compare two independently produced score sequences.

    Args:
        a: Records of the first run.
        b: Records of the second run.
        label_a: Name of the first run.
        label_b: Name of the second run.

    Returns:
        ComparisonResult with both summaries and a Mann-Whitney U test.
    """
    if label_a == label_b:
        raise ValueError("label_a and label_b must differ")
    summary_a = summarize(a)
    summary_b = summarize(b)

    if summary_a.n_scored and summary_b.n_scored:
        test = stats.mannwhitneyu(
            summary_a.distribution, summary_b.distribution, alternative="two-sided"
        )
        statistic, p_value = float(test.statistic), float(test.pvalue)
    else:
        statistic, p_value = float("nan"), float("nan")

    return ComparisonResult(
        label_a=label_a,
        label_b=label_b,
        summary_a=summary_a,
        summary_b=summary_b,
        mean_difference=summary_a.mean - summary_b.mean,
        statistic=statistic,
        p_value=p_value,
    )

