"""
Experiment runners for spatial cross-validation.

This module provides:
- resampling_runner: Repeated k-fold resampling with any partitioner
- comparison_runner: Spatial vs random folds on the same data
"""

from spatial_cv.experiments.comparison_runner import CVComparison, run_comparison
from spatial_cv.experiments.resampling_runner import (
    ResamplingResult,
    run_from_config,
    run_resampling,
    run_resampling_unit,
)

__all__ = [
    "CVComparison",
    "ResamplingResult",
    "run_comparison",
    "run_from_config",
    "run_resampling",
    "run_resampling_unit",
]
