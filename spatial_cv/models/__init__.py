"""Model adapters for the resampling runner."""

from spatial_cv.config import LogisticRegressionConfig, XGBoostConfig
from spatial_cv.models.base import ModelAdapter, SklearnClassifierAdapter, check_training_data
from spatial_cv.models.logistic_regression import LogisticRegressionModel, check_full_rank
from spatial_cv.models.xgboost_model import XGBoostModel

__all__ = [
    "ModelAdapter",
    "SklearnClassifierAdapter",
    "check_training_data",
    "check_full_rank",
    "LogisticRegressionConfig",
    "LogisticRegressionModel",
    "XGBoostConfig",
    "XGBoostModel",
]
