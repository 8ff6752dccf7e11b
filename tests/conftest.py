"""Shared fixtures for the spatial_cv test suite."""

import numpy as np
import pandas as pd
import pytest

from spatial_cv.config import SyntheticDataConfig
from spatial_cv.data.observations import ObservationSet
from spatial_cv.io.synthetic_generator import SyntheticGenerator


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: full-size resampling runs")


def make_clustered_frame(
    n_clusters: int = 4,
    per_cluster: int = 10,
    seed: int = 0,
) -> pd.DataFrame:
    """Well separated point clusters, each holding both response classes."""
    rng = np.random.default_rng(seed)
    centers = np.array([[0.0, 0.0], [100.0, 0.0], [0.0, 100.0], [100.0, 100.0],
                        [50.0, 200.0], [200.0, 50.0]])[:n_clusters]
    rows = []
    for c, (cx, cy) in enumerate(centers):
        for j in range(per_cluster):
            response = j % 2
            rows.append({
                "id": f"c{c}-{j}",
                "x": cx + rng.normal(0, 3),
                "y": cy + rng.normal(0, 3),
                "slope": rng.normal(response, 1.0),
                "wetness": rng.normal(0, 1.0),
                "slides": response,
            })
    return pd.DataFrame(rows)


@pytest.fixture
def clustered_frame():
    return make_clustered_frame()


@pytest.fixture
def clustered_observations(clustered_frame):
    """40 observations in 4 spatial clusters with two predictors."""
    return ObservationSet.from_dataframe(
        clustered_frame, response_col="slides", coord_cols=("x", "y"), id_col="id"
    )


@pytest.fixture(scope="session")
def synthetic_frame():
    """Default synthetic sample: 175 positives, 175 negatives."""
    return SyntheticGenerator(SyntheticDataConfig()).generate()


@pytest.fixture(scope="session")
def synthetic_observations(synthetic_frame):
    return ObservationSet.from_dataframe(
        synthetic_frame, response_col="response", coord_cols=("x", "y"), id_col="id"
    )
