"""
Repeated k-fold resampling runner.

For each repetition a fresh fold assignment is drawn, each fold is held out
once, the model is fit on the remaining folds and scored on the held-out one.
This runner:
- Never aggregates inside the loop (one ScoreRecord per unit)
- Excludes and logs per-unit failures without aborting sibling units
- Aborts the whole run on MetricRangeError or too many failed units
- Supports worker threads, cooperative cancellation and an overall deadline
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from spatial_cv.config import ResamplingConfig
from spatial_cv.data.observations import ObservationSet
from spatial_cv.data.splitters import (
    Partitioner,
    ResamplingUnit,
    SpatialPartitioner,
    build_resampling_plan,
)
from spatial_cv.errors import (
    UNIT_ERRORS,
    DegenerateFoldError,
    ParameterError,
    ResamplingAbortedError,
    UndefinedMetricError,
    raise_parameter_error,
)
from spatial_cv.evaluation.aggregation import (
    ScoreRecord,
    ScoreSummary,
    UnitFailure,
    failures_to_frame,
    records_to_frame,
    repetition_means,
    summarize,
)
from spatial_cv.evaluation.metrics import Metric, get_metric, metric_name, validate_score_range
from spatial_cv.models.base import ModelAdapter
from spatial_cv.models.logistic_regression import LogisticRegressionModel

logger = logging.getLogger(__name__)


@dataclass
class ResamplingResult:
    """Outcome of one resampling run.

    Attributes:
        records: Score records of successful units, ordered by (repetition, fold).
        failures: Failed and skipped units, ordered by (repetition, fold).
        n_units_expected: repetitions x folds.
        partitioner: Name of the fold assignment strategy.
        model: Name of the model adapter.
        metric: Name of the metric.
        params: Run parameters (folds, repetitions, seed base, ...).
    """

    records: List[ScoreRecord]
    failures: List[UnitFailure]
    n_units_expected: int
    partitioner: str
    model: str
    metric: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_failed(self) -> int:
        return sum(1 for f in self.failures if f.status == "failed")

    @property
    def n_skipped(self) -> int:
        return sum(1 for f in self.failures if f.status == "skipped")

    @property
    def values(self) -> np.ndarray:
        """Raw per-unit metric values."""
        return np.array([r.value for r in self.records], dtype=np.float64)

    def summary(self) -> ScoreSummary:
        """Summary statistics with failed/skipped counts."""
        return summarize(self.records, n_failed=self.n_failed, n_skipped=self.n_skipped)

    def to_frame(self) -> pd.DataFrame:
        return records_to_frame(self.records)

    def failures_frame(self) -> pd.DataFrame:
        return failures_to_frame(self.failures)

    def repetition_means(self) -> pd.Series:
        return repetition_means(self.records)

    def to_dict(self) -> dict:
        """Summary and run metadata for serialization."""
        return {
            "partitioner": self.partitioner,
            "model": self.model,
            "metric": self.metric,
            "n_units_expected": self.n_units_expected,
            "params": self.params,
            "summary": self.summary().to_dict(),
        }


def _unit_failure(unit: ResamplingUnit, error_type: str, message: str, status: str = "failed") -> UnitFailure:
    return UnitFailure(
        repetition=unit.repetition,
        fold=unit.fold,
        error_type=error_type,
        message=message,
        status=status,
    )


def _score(metric: Metric, y_true: np.ndarray, y_score: np.ndarray, unit: ResamplingUnit) -> float:
    """Apply metric and range-check the value.

    A metric that is undefined on a single-class split (NaN or ValueError, as
    sklearn's roc_auc_score gives) excludes the unit instead of stopping the run.
    """
    single_class = np.unique(y_true).size < 2
    message = f"Unit {unit.key}: metric undefined for a split with a single class"
    context = {"repetition": unit.repetition, "fold": unit.fold}
    try:
        value = metric(y_true, y_score)
    except ValueError as e:
        if single_class:
            raise UndefinedMetricError(message, details=context) from e
        raise
    if single_class and np.isnan(float(value)):
        raise UndefinedMetricError(message, details=context)
    return validate_score_range(value)


def run_resampling_unit(
    observations: ObservationSet,
    unit: ResamplingUnit,
    model_adapter: ModelAdapter,
    metric: Metric,
    evaluate_train: bool = False,
) -> ScoreRecord:
    """Fit and evaluate a single (repetition, fold) unit.

    Args:
        observations: Shared, read-only observation set.
        unit: Train/test indices of this unit.
        model_adapter: Model to fit on the training fold.
        metric: metric(y_true, y_score) -> float.
        evaluate_train: Also score the model on its training fold.

    Returns:
        ScoreRecord for this unit.

    Raises:
        DegenerateFoldError: Empty train/test set, or metric undefined on the fold.
        ModelFitError: If the model cannot be fit.
        MetricRangeError: If the metric returns a value outside [0, 1].
    """
    context = {"repetition": unit.repetition, "fold": unit.fold}
    if unit.n_test == 0:
        raise DegenerateFoldError(f"Unit {unit.key}: test set is empty", details=context)
    if unit.n_train == 0:
        raise DegenerateFoldError(f"Unit {unit.key}: training set is empty", details=context)
    if unit.n_train + unit.n_test != len(observations):
        raise DegenerateFoldError(
            f"Unit {unit.key}: train and test cover {unit.n_train + unit.n_test} "
            f"of {len(observations)} observations",
            details=context,
        )

    X_train = observations.X[unit.train_indices]
    y_train = observations.y[unit.train_indices]
    X_test = observations.X[unit.test_indices]
    y_test = observations.y[unit.test_indices]

    state = model_adapter.fit(X_train, y_train)
    scores = np.asarray(model_adapter.predict(state, X_test), dtype=np.float64)
    if scores.shape != (unit.n_test,):
        raise ValueError(
            f"{model_adapter.name}.predict returned shape {scores.shape}, expected ({unit.n_test},)"
        )

    value = _score(metric, y_test, scores, unit)

    train_value = None
    if evaluate_train:
        train_scores = model_adapter.predict(state, X_train)
        train_value = _score(metric, y_train, train_scores, unit)

    return ScoreRecord(
        repetition=unit.repetition,
        fold=unit.fold,
        value=value,
        n_train=unit.n_train,
        n_test=unit.n_test,
        train_value=train_value,
    )


def _execute(
    observations: ObservationSet,
    unit: ResamplingUnit,
    model_adapter: ModelAdapter,
    metric: Metric,
    evaluate_train: bool,
    cancel_event: threading.Event,
    deadline: Optional[float],
) -> Union[ScoreRecord, UnitFailure]:
    """Run one unit, converting unit-scoped errors into a failure record."""
    if cancel_event.is_set():
        return _unit_failure(unit, "Cancelled", "run cancelled before unit started", "skipped")
    if deadline is not None and time.monotonic() >= deadline:
        return _unit_failure(unit, "DeadlineExceeded", "deadline passed before unit started", "skipped")

    try:
        return run_resampling_unit(observations, unit, model_adapter, metric, evaluate_train)
    except UNIT_ERRORS as e:
        logger.warning(
            "Excluding unit repetition=%d fold=%d: %s: %s",
            unit.repetition,
            unit.fold,
            type(e).__name__,
            e.message,
        )
        return _unit_failure(unit, type(e).__name__, e.message)


def _check_run_args(observations: ObservationSet, k: int, repetitions: int, n_jobs: int) -> None:
    if not isinstance(k, (int, np.integer)) or k < 2:
        raise_parameter_error("k", k, constraint="integer >= 2")
    if not isinstance(repetitions, (int, np.integer)) or repetitions < 1:
        raise_parameter_error("repetitions", repetitions, constraint="integer >= 1")
    if n_jobs < 1:
        raise_parameter_error("n_jobs", n_jobs, constraint="integer >= 1")
    if len(observations) < 2 * k:
        raise ParameterError(
            f"{len(observations)} observations are too few for {k}-fold resampling",
            suggestion=f"Provide at least {2 * k} observations or use fewer folds.",
            details={"n_observations": len(observations), "k": k},
        )


def run_resampling(
    observations: ObservationSet,
    k: int,
    repetitions: int,
    partitioner: Optional[Partitioner] = None,
    model_adapter: Optional[ModelAdapter] = None,
    metric: Union[str, Metric] = "auc",
    seed_base: Optional[int] = None,
    n_jobs: int = 1,
    max_failure_fraction: float = 0.5,
    deadline_seconds: Optional[float] = None,
    evaluate_train: bool = False,
    cancel_event: Optional[threading.Event] = None,
    show_progress: bool = True,
) -> ResamplingResult:
    """Run repeated k-fold resampling.

    Args:
        observations: Observation set (read-only for the run).
        k: Number of folds.
        repetitions: Number of repetitions, each with a fresh fold assignment.
        partitioner: Fold assignment strategy. Defaults to SpatialPartitioner.
        model_adapter: Model to evaluate. Defaults to LogisticRegressionModel.
        metric: Metric name or callable(y_true, y_score) -> float.
        seed_base: Base seed; the same seed base and inputs reproduce the
            same records, independent of n_jobs.
        n_jobs: Worker threads. 1 runs serially.
        max_failure_fraction: Abort if more than this fraction of units fail.
        deadline_seconds: Overall time budget; unfinished units are skipped.
            With n_jobs > 1 the call returns at the deadline and units still
            running are discarded. Serially, the running unit finishes first.
        evaluate_train: Also record the metric on each training fold.
        cancel_event: Set it to stop the run; units not yet started are skipped.
        show_progress: Whether to show progress bar.

    Returns:
        ResamplingResult with records and excluded units.

    Raises:
        ParameterError: Invalid k, repetitions or too few observations.
        MetricRangeError: A metric value fell outside [0, 1].
        ResamplingAbortedError: More than max_failure_fraction of units failed.
    """
    _check_run_args(observations, k, repetitions, n_jobs)
    if partitioner is None:
        partitioner = SpatialPartitioner()
    if model_adapter is None:
        model_adapter = LogisticRegressionModel()
    metric_fn = get_metric(metric)
    cancel_event = cancel_event or threading.Event()
    deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None

    n_expected = k * repetitions
    logger.info(
        "Resampling %d observations: %d repetitions x %d folds, partitioner=%s, model=%s",
        len(observations),
        repetitions,
        k,
        partitioner.name,
        model_adapter.name,
    )

    units, rep_failures = build_resampling_plan(
        observations.coordinates, k, repetitions, partitioner, seed_base=seed_base
    )

    failures: List[UnitFailure] = [
        UnitFailure(
            repetition=rf.repetition,
            fold=fold,
            error_type=type(rf.error).__name__,
            message=str(getattr(rf.error, "message", rf.error)),
        )
        for rf in rep_failures
        for fold in range(k)
    ]
    records: List[ScoreRecord] = []

    def collect(outcome: Union[ScoreRecord, UnitFailure]) -> None:
        if isinstance(outcome, ScoreRecord):
            records.append(outcome)
        else:
            failures.append(outcome)

    with tqdm(total=len(units), desc=f"{partitioner.name} CV units", disable=not show_progress) as progress:
        if n_jobs == 1:
            # A unit already running when the deadline passes is allowed to finish
            for unit in units:
                collect(
                    _execute(observations, unit, model_adapter, metric_fn, evaluate_train, cancel_event, deadline)
                )
                progress.update(1)
        else:
            executor = ThreadPoolExecutor(max_workers=n_jobs)
            future_to_unit = {
                executor.submit(
                    _execute, observations, unit, model_adapter, metric_fn, evaluate_train, cancel_event, deadline
                ): unit
                for unit in units
            }
            pending = set(future_to_unit)
            deadline_hit = False
            try:
                while pending:
                    timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
                    done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
                    if not done:
                        deadline_hit = True
                        break
                    for future in done:
                        collect(future.result())
                        progress.update(1)
            except BaseException:
                cancel_event.set()
                raise
            finally:
                for future in pending:
                    future.cancel()
                    status_reason = (
                        ("DeadlineExceeded", "unit did not finish before the deadline")
                        if deadline is not None and time.monotonic() >= deadline
                        else ("Cancelled", "run stopped before unit finished")
                    )
                    failures.append(_unit_failure(future_to_unit[future], *status_reason, status="skipped"))
                # Past the deadline, units still running are abandoned: they finish
                # in the background and their results are discarded.
                executor.shutdown(wait=not deadline_hit, cancel_futures=True)

    records.sort(key=lambda r: (r.repetition, r.fold))
    failures.sort(key=lambda f: (f.repetition, f.fold))

    result = ResamplingResult(
        records=records,
        failures=failures,
        n_units_expected=n_expected,
        partitioner=partitioner.name,
        model=model_adapter.name,
        metric=metric_name(metric),
        params={
            "folds": k,
            "repetitions": repetitions,
            "seed_base": seed_base,
            "n_jobs": n_jobs,
            "evaluate_train": evaluate_train,
        },
    )

    if result.n_skipped:
        logger.warning("%d of %d units incomplete (cancelled or past deadline)", result.n_skipped, n_expected)
    logger.info(
        "Resampling finished: %d scored, %d failed, %d skipped",
        len(records),
        result.n_failed,
        result.n_skipped,
    )

    if result.n_failed / n_expected > max_failure_fraction:
        raise ResamplingAbortedError(
            f"{result.n_failed} of {n_expected} units failed "
            f"(more than {max_failure_fraction:.0%})",
            suggestion="Inspect the failures; use fewer folds or check the predictors.",
            details={"result": result},
        )

    return result


def run_from_config(
    observations: ObservationSet,
    cfg: ResamplingConfig,
    model_adapter: Optional[ModelAdapter] = None,
    partitioner: Optional[Partitioner] = None,
    metric: Union[str, Metric, None] = None,
    cancel_event: Optional[threading.Event] = None,
    show_progress: bool = True,
) -> ResamplingResult:
    """Run resampling with parameters from a ResamplingConfig.

    Args:
        observations: Observation set.
        cfg: Resampling configuration.
        model_adapter: Model to evaluate. Defaults to LogisticRegressionModel.
        partitioner: Defaults to SpatialPartitioner with cfg.max_partition_retries.
        metric: Overrides cfg.metric (e.g. with a callable).
        cancel_event: Cooperative cancellation flag.
        show_progress: Whether to show progress bar.
    """
    if partitioner is None:
        partitioner = SpatialPartitioner(max_retries=cfg.max_partition_retries)
    return run_resampling(
        observations,
        k=cfg.folds,
        repetitions=cfg.repetitions,
        partitioner=partitioner,
        model_adapter=model_adapter,
        metric=metric if metric is not None else cfg.metric,
        seed_base=cfg.partition_seed_base,
        n_jobs=cfg.n_jobs,
        max_failure_fraction=cfg.max_failure_fraction,
        deadline_seconds=cfg.deadline_seconds,
        evaluate_train=cfg.evaluate_train,
        cancel_event=cancel_event,
        show_progress=show_progress,
    )
