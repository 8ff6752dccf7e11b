"""Column extraction from observation tables."""

from spatial_cv.preprocessing.feature_pipeline import FeaturePipeline

__all__ = ["FeaturePipeline"]
