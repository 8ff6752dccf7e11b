"""Tests for the repeated k-fold resampling runner."""

import threading
import time

import numpy as np
import pytest
from sklearn.metrics import roc_auc_score
from tqdm import tqdm

from spatial_cv.config import ResamplingConfig
from spatial_cv.data.splitters import FoldAssignment, Partitioner, RandomPartitioner, ResamplingUnit
from spatial_cv.errors import (
    DegenerateFoldError,
    MetricRangeError,
    ModelFitError,
    ParameterError,
    PartitionError,
    ResamplingAbortedError,
    UndefinedMetricError,
)
from spatial_cv.evaluation.metrics import compute_auc
from spatial_cv.experiments import resampling_runner
from spatial_cv.experiments.resampling_runner import (
    ResamplingResult,
    run_from_config,
    run_resampling,
    run_resampling_unit,
)
from spatial_cv.models.base import ModelAdapter
from spatial_cv.models.logistic_regression import LogisticRegressionModel


class LeaveLastFoldEmpty(Partitioner):
    """Spreads points over folds 0..k-2 so fold k-1 never gets a point."""

    name = "leave_last_empty"

    def partition(self, coordinates, k, seed=None):
        labels = np.arange(len(coordinates)) % (k - 1)
        return FoldAssignment(labels=labels, k=k, seed=seed)


class NeverPartitions(Partitioner):
    name = "never"

    def partition(self, coordinates, k, seed=None):
        raise PartitionError("cannot split")


class FailsWithoutMarker(ModelAdapter):
    """Fails whenever the marker row is held out of the training split."""

    name = "fails_without_marker"

    def __init__(self, marker):
        self.marker = marker
        self.inner = LogisticRegressionModel()

    def fit(self, X, y):
        if not np.any(np.all(X == self.marker, axis=1)):
            raise ModelFitError("marker row held out")
        return self.inner.fit(X, y)

    def predict(self, state, X):
        return self.inner.predict(state, X)


class AlwaysFails(ModelAdapter):
    name = "always_fails"

    def fit(self, X, y):
        raise ModelFitError("singular design")

    def predict(self, state, X):
        raise AssertionError("predict must not be called")


class SlowModel(LogisticRegressionModel):
    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def fit(self, X, y):
        time.sleep(self.delay)
        return super().fit(X, y)


class CancelsAfter(LogisticRegressionModel):
    """Sets the cancel event during its n-th fit."""

    def __init__(self, event, n):
        super().__init__()
        self.event = event
        self.n = n
        self.calls = 0

    def fit(self, X, y):
        self.calls += 1
        if self.calls == self.n:
            self.event.set()
        return super().fit(X, y)


class SingleClassFirstFold(Partitioner):
    """Puts every other positive alone in fold 0; the rest go to folds 1..k-1."""

    name = "single_class_first"

    def __init__(self, response):
        self.response = np.asarray(response)

    def partition(self, coordinates, k, seed=None):
        labels = np.arange(len(coordinates)) % (k - 1) + 1
        positives = np.flatnonzero(self.response == 1)
        labels[positives[::2]] = 0
        return FoldAssignment(labels=labels, k=k, seed=seed)


class RecordingBar(tqdm):
    """tqdm that remembers whether it was closed."""

    instances = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.was_closed = False
        RecordingBar.instances.append(self)

    def close(self):
        self.was_closed = True
        super().close()


def _run(observations, **kwargs):
    kwargs.setdefault("show_progress", False)
    kwargs.setdefault("seed_base", 7)
    return run_resampling(observations, **kwargs)


def _keyed(result):
    return [(r.repetition, r.fold) for r in result.records]


class TestRunResampling:
    def test_one_record_per_unit(self, synthetic_observations):
        result = _run(synthetic_observations, k=5, repetitions=3)

        assert result.n_units_expected == 15
        assert len(result.records) + result.n_failed == 15
        assert result.n_skipped == 0
        assert result.partitioner == "spatial"
        assert result.model == "logistic_regression"
        assert result.metric == "auc"
        assert _keyed(result) == sorted(_keyed(result))

    def test_train_and_test_cover_all_observations(self, synthetic_observations):
        result = _run(synthetic_observations, k=4, repetitions=2)
        for record in result.records:
            assert record.n_train + record.n_test == len(synthetic_observations)
            assert record.n_test > 0
            assert 0.0 <= record.value <= 1.0

    def test_reproducible_with_seed_base(self, synthetic_observations):
        a = _run(synthetic_observations, k=5, repetitions=4, seed_base=11)
        b = _run(synthetic_observations, k=5, repetitions=4, seed_base=11)
        assert _keyed(a) == _keyed(b)
        np.testing.assert_array_equal(a.values, b.values)

    def test_worker_count_does_not_change_results(self, synthetic_observations):
        serial = _run(synthetic_observations, k=5, repetitions=4, seed_base=11, n_jobs=1)
        parallel = _run(synthetic_observations, k=5, repetitions=4, seed_base=11, n_jobs=4)
        assert _keyed(serial) == _keyed(parallel)
        np.testing.assert_allclose(serial.values, parallel.values, rtol=1e-12)
        assert serial.failures == parallel.failures

    def test_different_seed_bases_differ(self, synthetic_observations):
        a = _run(synthetic_observations, k=5, repetitions=3, seed_base=1)
        b = _run(synthetic_observations, k=5, repetitions=3, seed_base=2)
        assert not np.array_equal(a.values, b.values)

    def test_evaluate_train(self, synthetic_observations):
        result = _run(synthetic_observations, k=5, repetitions=2, evaluate_train=True)
        assert all(r.train_value is not None for r in result.records)
        train_mean = np.mean([r.train_value for r in result.records])
        assert train_mean >= result.summary().mean - 0.05

    def test_train_value_absent_by_default(self, synthetic_observations):
        result = _run(synthetic_observations, k=3, repetitions=1)
        assert all(r.train_value is None for r in result.records)

    def test_callable_metric(self, synthetic_observations):
        def auc_copy(y_true, y_score):
            return compute_auc(y_true, y_score)

        result = _run(
            synthetic_observations, k=3, repetitions=1, partitioner=RandomPartitioner(), metric=auc_copy
        )
        assert result.metric == "auc_copy"
        assert len(result.records) == 3

    @pytest.mark.slow
    def test_full_size_run(self, synthetic_observations):
        assert len(synthetic_observations) == 350
        result = run_from_config(
            synthetic_observations,
            ResamplingConfig(folds=5, repetitions=100, partition_seed_base=2024, n_jobs=4),
            show_progress=False,
        )

        assert result.n_units_expected == 500
        assert len(result.records) + result.n_failed == 500
        assert len(result.records) >= 490
        summary = result.summary()
        assert summary.n_scored == len(result.records)
        assert 0.5 < summary.mean < 1.0
        assert len(result.repetition_means()) == 100


class TestExcludedUnits:
    def test_empty_test_fold_is_excluded_and_counted(self, synthetic_observations):
        result = _run(synthetic_observations, k=4, repetitions=3, partitioner=LeaveLastFoldEmpty())

        degenerate = [f for f in result.failures if f.error_type == "DegenerateFoldError"]
        assert [(f.repetition, f.fold) for f in degenerate] == [(0, 3), (1, 3), (2, 3)]
        assert all("empty" in f.message for f in degenerate)
        assert all(r.fold != 3 for r in result.records)
        assert result.summary().n_failed == result.n_failed >= 3

    def test_model_fit_error_is_excluded(self, synthetic_observations):
        marker = synthetic_observations.X[0]
        result = _run(
            synthetic_observations,
            k=5,
            repetitions=4,
            partitioner=RandomPartitioner(),
            model_adapter=FailsWithoutMarker(marker),
        )

        fit_failures = [f for f in result.failures if f.error_type == "ModelFitError"]
        assert sorted(f.repetition for f in fit_failures) == [0, 1, 2, 3]
        assert len(result.records) == 20 - result.n_failed
        assert result.to_frame().shape[0] == len(result.records)
        assert result.failures_frame().shape[0] == result.n_failed

    def test_failed_partition_excludes_whole_repetition(self, synthetic_observations):
        result = _run(
            synthetic_observations, k=3, repetitions=2, partitioner=NeverPartitions(),
            max_failure_fraction=1.0,
        )
        assert result.records == []
        assert result.n_failed == 6
        assert {f.error_type for f in result.failures} == {"PartitionError"}
        assert np.isnan(result.summary().mean)

    def test_abort_when_too_many_units_fail(self, synthetic_observations):
        with pytest.raises(ResamplingAbortedError) as exc_info:
            _run(synthetic_observations, k=3, repetitions=2, model_adapter=AlwaysFails())

        partial = exc_info.value.details["result"]
        assert isinstance(partial, ResamplingResult)
        assert partial.n_failed == 6

    def test_failure_fraction_threshold_is_exclusive(self, synthetic_observations):
        # One failure per repetition out of 2 folds is exactly one half
        marker = synthetic_observations.X[0]
        result = _run(
            synthetic_observations,
            k=2,
            repetitions=2,
            partitioner=RandomPartitioner(),
            model_adapter=FailsWithoutMarker(marker),
            max_failure_fraction=0.5,
        )
        assert result.n_failed == 2

    def test_sklearn_metric_on_single_class_fold_is_excluded(self, synthetic_observations):
        result = _run(
            synthetic_observations,
            k=4,
            repetitions=3,
            partitioner=SingleClassFirstFold(synthetic_observations.y),
            metric=roc_auc_score,
        )

        assert [(f.repetition, f.fold) for f in result.failures] == [(0, 0), (1, 0), (2, 0)]
        assert {f.error_type for f in result.failures} == {"UndefinedMetricError"}
        assert len(result.records) == 9
        assert all(r.fold != 0 for r in result.records)

    def test_nan_metric_on_single_class_fold_is_excluded(self, synthetic_observations):
        def nan_when_undefined(y_true, y_score):
            if np.unique(y_true).size < 2:
                return float("nan")
            return roc_auc_score(y_true, y_score)

        result = _run(
            synthetic_observations,
            k=4,
            repetitions=2,
            partitioner=SingleClassFirstFold(synthetic_observations.y),
            metric=nan_when_undefined,
        )
        assert result.n_failed == 2
        assert len(result.records) == 6


class TestFatalErrors:
    @pytest.mark.parametrize("n_jobs", [1, 3])
    def test_metric_out_of_range_stops_the_run(self, synthetic_observations, n_jobs):
        def broken_metric(y_true, y_score):
            return 1.5

        with pytest.raises(MetricRangeError):
            _run(synthetic_observations, k=3, repetitions=2, metric=broken_metric, n_jobs=n_jobs)

    def test_wrong_prediction_shape(self, synthetic_observations):
        class BadShape(LogisticRegressionModel):
            def predict(self, state, X):
                return np.zeros((len(X), 2))

        with pytest.raises(ValueError, match="shape"):
            _run(synthetic_observations, k=3, repetitions=1, model_adapter=BadShape())

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"k": 1, "repetitions": 2},
            {"k": 3, "repetitions": 0},
            {"k": 3, "repetitions": 2, "n_jobs": 0},
            {"k": 200, "repetitions": 1},
        ],
    )
    def test_invalid_parameters(self, synthetic_observations, kwargs):
        with pytest.raises(ParameterError):
            _run(synthetic_observations, **kwargs)

    def test_nan_metric_on_two_class_fold_stops_the_run(self, synthetic_observations):
        def always_nan(y_true, y_score):
            return float("nan")

        with pytest.raises(MetricRangeError):
            _run(synthetic_observations, k=3, repetitions=1, metric=always_nan)

    @pytest.mark.parametrize("n_jobs", [1, 3])
    def test_progress_bar_closed_when_run_stops(self, synthetic_observations, monkeypatch, n_jobs):
        def broken_metric(y_true, y_score):
            return 1.5

        monkeypatch.setattr(RecordingBar, "instances", [])
        monkeypatch.setattr(resampling_runner, "tqdm", RecordingBar)
        with pytest.raises(MetricRangeError):
            _run(synthetic_observations, k=3, repetitions=2, metric=broken_metric, n_jobs=n_jobs)

        assert len(RecordingBar.instances) == 1
        assert RecordingBar.instances[0].was_closed


class TestCancellationAndDeadline:
    @pytest.mark.parametrize("n_jobs", [1, 2])
    def test_cancelled_before_start(self, synthetic_observations, n_jobs):
        event = threading.Event()
        event.set()
        result = _run(synthetic_observations, k=3, repetitions=2, cancel_event=event, n_jobs=n_jobs)

        assert result.records == []
        assert result.n_skipped == 6
        assert result.n_failed == 0
        assert {f.status for f in result.failures} == {"skipped"}

    def test_cancel_during_run(self, synthetic_observations):
        event = threading.Event()
        result = _run(
            synthetic_observations,
            k=5,
            repetitions=3,
            partitioner=RandomPartitioner(),
            model_adapter=CancelsAfter(event, 3),
            cancel_event=event,
        )
        assert len(result.records) == 3
        assert result.n_skipped == 12
        assert all(f.error_type == "Cancelled" for f in result.failures)

    def test_deadline_skips_remaining_units(self, synthetic_observations):
        result = _run(
            synthetic_observations,
            k=5,
            repetitions=2,
            partitioner=RandomPartitioner(),
            model_adapter=SlowModel(0.05),
            deadline_seconds=0.12,
        )
        assert len(result.records) >= 1
        assert result.n_skipped > 0
        assert len(result.records) + result.n_failed + result.n_skipped == 10
        assert {f.error_type for f in result.failures} == {"DeadlineExceeded"}

    def test_deadline_with_workers(self, synthetic_observations):
        result = _run(
            synthetic_observations,
            k=5,
            repetitions=4,
            partitioner=RandomPartitioner(),
            model_adapter=SlowModel(0.1),
            deadline_seconds=0.15,
            n_jobs=2,
        )
        assert result.n_skipped > 0
        assert len(result.records) + result.n_failed + result.n_skipped == 20

    def test_deadline_does_not_wait_for_running_units(self, synthetic_observations):
        start = time.monotonic()
        result = _run(
            synthetic_observations,
            k=5,
            repetitions=2,
            partitioner=RandomPartitioner(),
            model_adapter=SlowModel(1.5),
            deadline_seconds=0.2,
            n_jobs=2,
        )
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert result.records == []
        assert result.n_skipped == 10
        assert {f.error_type for f in result.failures} == {"DeadlineExceeded"}


class TestSingleUnit:
    def test_unit_must_cover_all_observations(self, clustered_observations):
        unit = ResamplingUnit(
            repetition=0, fold=0, train_indices=np.arange(10), test_indices=np.arange(10, 20)
        )
        with pytest.raises(DegenerateFoldError, match="cover"):
            run_resampling_unit(clustered_observations, unit, LogisticRegressionModel(), compute_auc)

    def test_single_class_test_fold(self, clustered_observations):
        positives = np.flatnonzero(clustered_observations.y == 1)[:3]
        rest = np.setdiff1d(np.arange(len(clustered_observations)), positives)
        unit = ResamplingUnit(repetition=0, fold=0, train_indices=rest, test_indices=positives)

        with pytest.raises(DegenerateFoldError) as exc_info:
            run_resampling_unit(clustered_observations, unit, LogisticRegressionModel(), compute_auc)
        assert type(exc_info.value).__name__ == "UndefinedMetricError"

    def test_record_fields(self, clustered_observations):
        test = np.arange(0, 40, 4)
        train = np.setdiff1d(np.arange(40), test)
        unit = ResamplingUnit(repetition=2, fold=1, train_indices=train, test_indices=test)

        record = run_resampling_unit(
            clustered_observations, unit, LogisticRegressionModel(), compute_auc, evaluate_train=True
        )
        assert (record.repetition, record.fold) == (2, 1)
        assert (record.n_train, record.n_test) == (30, 10)
        assert 0.0 <= record.value <= 1.0
        assert record.train_value is not None


class TestRunFromConfig:
    def test_parameters_come_from_config(self, synthetic_observations):
        cfg = ResamplingConfig(folds=3, repetitions=2, partition_seed_base=5, evaluate_train=True)
        result = run_from_config(synthetic_observations, cfg, show_progress=False)

        assert result.n_units_expected == cfg.n_units == 6
        assert result.params["seed_base"] == 5
        assert result.params["evaluate_train"] is True
        d = result.to_dict()
        assert d["summary"]["n_scored"] == len(result.records)
        assert d["partitioner"] == "spatial"

    def test_config_is_reproducible(self, synthetic_observations):
        cfg = ResamplingConfig(folds=3, repetitions=2, partition_seed_base=5)
        a = run_from_config(synthetic_observations, cfg, show_progress=False)
        b = run_from_config(synthetic_observations, cfg, show_progress=False)
        np.testing.assert_array_equal(a.values, b.values)
