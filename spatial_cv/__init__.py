"""
Repeated spatial cross-validation for binary classifiers on point data.

Typical use:
    obs = ObservationSet.from_dataframe(df, response_col="slides", coord_cols=("x", "y"))
    result = run_resampling(obs, k=5, repetitions=100, seed_base=2024)
    result.summary()
"""

from spatial_cv.data.observations import Observation, ObservationSet
from spatial_cv.data.splitters import RandomPartitioner, SpatialPartitioner
from spatial_cv.evaluation.aggregation import compare, summarize
from spatial_cv.experiments.resampling_runner import ResamplingResult, run_resampling

__version__ = "0.1.0"

__all__ = [
    "Observation",
    "ObservationSet",
    "RandomPartitioner",
    "SpatialPartitioner",
    "ResamplingResult",
    "compare",
    "run_resampling",
    "summarize",
]
