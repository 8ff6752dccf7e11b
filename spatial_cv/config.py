"""
Configuration management using pydantic.

All config classes use pydantic for validation and YAML loading.
Config files are stored in configs/ directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field


# Base path for config files
CONFIGS_DIR = Path(__file__).parent.parent / "configs"


def load_yaml(path: Path | str) -> dict[str, Any]:
    """Load a YAML file and return as dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


class ResamplingConfig(BaseModel):
    """Configuration for repeated (spatial) k-fold cross-validation.

    Defaults follow the usual landslide-susceptibility setup:
    5 folds repeated 100 times = 500 fit/evaluate units.
    """

    folds: int = Field(default=5, ge=2)
    repetitions: int = Field(default=100, ge=1)
    metric: str = "auc"
    partition_seed_base: Optional[int] = None  # None = fresh entropy per run
    max_partition_retries: int = Field(default=10, ge=0)
    max_failure_fraction: float = Field(default=0.5, ge=0.0, le=1.0)
    n_jobs: int = Field(default=1, ge=1)
    deadline_seconds: Optional[float] = Field(default=None, gt=0)
    evaluate_train: bool = False  # Also score each fitted model on its own training split

    @property
    def n_units(self) -> int:
        """Total number of (repetition, fold) units."""
        return self.folds * self.repetitions

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> ResamplingConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/resampling.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "resampling.yaml"
        return cls(**load_yaml(path))


class LogisticRegressionConfig(BaseModel):
    """Configuration for the logit-link GLM reference learner.

    penalty=None gives the plain maximum-likelihood fit.
    """

    penalty: Optional[str] = None
    C: float = Field(default=1.0, gt=0)  # Only used when penalty is set
    solver: str = "lbfgs"
    max_iter: int = 1000
    fit_intercept: bool = True
    random_seed: int = 42

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> LogisticRegressionConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/model_logistic.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "model_logistic.yaml"
        return cls(**load_yaml(path))


class XGBoostConfig(BaseModel):
    """Configuration for the gradient boosted trees learner."""

    n_estimators: int = 100
    max_depth: int = 3
    learning_rate: float = 0.1
    subsample: float = 0.8
    colsample_bytree: float = 0.8
    early_stopping_rounds: int = 10
    validation_fraction: float = 0.2  # Fraction of training data for early stopping
    random_seed: int = 42

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> XGBoostConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/model_xgboost.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "model_xgboost.yaml"
        return cls(**load_yaml(path))


class SyntheticDataConfig(BaseModel):
    """Configuration for spatially autocorrelated synthetic data.

    Predictors are smooth random fields over a square study area, so nearby
    points carry similar predictor values. The response adds a spatially
    structured residual that the predictors do not explain, which is what
    makes random cross-validation over-optimistic.
    """

    random_seed: int = 42
    n_positive: int = Field(default=175, ge=1)
    n_negative: int = Field(default=175, ge=1)
    extent: float = Field(default=10_000.0, gt=0)  # Side length of study area
    n_predictors: int = Field(default=3, ge=1)
    n_field_centers: int = Field(default=25, ge=1)
    length_scale: float = Field(default=1_500.0, gt=0)  # Field smoothness
    coefficients: List[float] = Field(default=[1.5, -1.0, 0.5])
    residual_scale: float = Field(default=2.0, ge=0)  # Strength of unexplained spatial signal
    intercept: float = 0.0
    candidate_multiplier: int = Field(default=20, ge=2)

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> SyntheticDataConfig:
        """Load config from YAML file.

        Args:
            path: Path to YAML file. If None, uses configs/synthetic_data.yaml.
        """
        if path is None:
            path = CONFIGS_DIR / "synthetic_data.yaml"
        return cls(**load_yaml(path))
