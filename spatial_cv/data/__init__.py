"""
Observation sets, data backends and fold construction.

This module provides:
- ObservationSet: Validated, read-only table of located observations
- DataBackend: Abstract base class for data sources
- CSVBackend: Loads observations from a CSV file
- Partitioners: Spatial (k-means on coordinates) and random fold assignment
- build_resampling_plan: Repetition x fold train/test units
"""

from spatial_cv.data.backend import DataBackend
from spatial_cv.data.csv_backend import CSVBackend
from spatial_cv.data.observations import Observation, ObservationSet
from spatial_cv.data.splitters import (
    FoldAssignment,
    Partitioner,
    RandomPartitioner,
    RepetitionFailure,
    ResamplingUnit,
    SpatialPartitioner,
    build_resampling_plan,
    derive_repetition_seeds,
    split_assignment,
)

__all__ = [
    "DataBackend",
    "CSVBackend",
    "Observation",
    "ObservationSet",
    "FoldAssignment",
    "Partitioner",
    "RandomPartitioner",
    "RepetitionFailure",
    "ResamplingUnit",
    "SpatialPartitioner",
    "build_resampling_plan",
    "derive_repetition_seeds",
    "split_assignment",
]
