"""Synthetic data generation."""

from spatial_cv.config import SyntheticDataConfig
from spatial_cv.io.synthetic_generator import SyntheticBackend, SyntheticGenerator

__all__ = [
    "SyntheticBackend",
    "SyntheticDataConfig",
    "SyntheticGenerator",
]
