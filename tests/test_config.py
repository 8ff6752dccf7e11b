"""Tests for YAML-backed configuration."""

import pytest
from pydantic import ValidationError

from spatial_cv.config import (
    LogisticRegressionConfig,
    ResamplingConfig,
    SyntheticDataConfig,
    XGBoostConfig,
)


class TestResamplingConfig:
    def test_defaults(self):
        cfg = ResamplingConfig()
        assert (cfg.folds, cfg.repetitions) == (5, 100)
        assert cfg.metric == "auc"
        assert cfg.partition_seed_base is None
        assert cfg.n_units == 500

    def test_shipped_yaml(self):
        cfg = ResamplingConfig.from_yaml()
        assert cfg.folds == 5
        assert cfg.repetitions == 100
        assert cfg.partition_seed_base == 2024

    def test_yaml_override(self, tmp_path):
        path = tmp_path / "cv.yaml"
        path.write_text("folds: 10\nrepetitions: 20\nn_jobs: 4\n")
        cfg = ResamplingConfig.from_yaml(path)
        assert cfg.folds == 10
        assert cfg.repetitions == 20
        assert cfg.n_jobs == 4
        assert cfg.max_failure_fraction == 0.5

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert ResamplingConfig.from_yaml(path) == ResamplingConfig()

    @pytest.mark.parametrize(
        "field, value",
        [
            ("folds", 1),
            ("repetitions", 0),
            ("n_jobs", 0),
            ("max_failure_fraction", 1.5),
            ("deadline_seconds", 0),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            ResamplingConfig(**{field: value})


class TestModelConfigs:
    def test_logistic_yaml(self):
        cfg = LogisticRegressionConfig.from_yaml()
        assert cfg.penalty is None
        assert cfg.solver == "lbfgs"

    def test_xgboost_yaml(self):
        cfg = XGBoostConfig.from_yaml()
        assert cfg.n_estimators == 100
        assert cfg.early_stopping_rounds == 10


class TestSyntheticDataConfig:
    def test_shipped_yaml(self):
        cfg = SyntheticDataConfig.from_yaml()
        assert cfg.n_positive == cfg.n_negative == 175
        assert len(cfg.coefficients) == cfg.n_predictors

    def test_seed_override(self):
        cfg = SyntheticDataConfig.from_yaml()
        new = SyntheticDataConfig(**{**cfg.model_dump(), "random_seed": 9})
        assert new.random_seed == 9
        assert new.extent == cfg.extent
