"""
Abstract data backend interface.

A backend is whatever supplies the observation set (CSV export, synthetic
generator, database query). The resampling runner only ever sees the
ObservationSet it returns, so runners stay backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from spatial_cv.data.observations import ObservationSet


class DataBackend(ABC):
    """Abstract base class for observation sources."""

    name: str = "backend"

    @abstractmethod
    def load(self) -> ObservationSet:
        """Return the observation set.

        Returns:
            ObservationSet with coordinates, predictors and binary response.
        """

    def get_summary(self) -> dict:
        """Return summary statistics about the loaded data."""
        return {"backend": self.name, **self.load().summary()}
