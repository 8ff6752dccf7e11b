"""
Synthetic spatially autocorrelated presence/absence data.

Each predictor is a smooth random field over a square study area: a sum of
Gaussian bumps with random centres and weights, standardized to mean 0 and
unit variance. The response is drawn from a logistic model of the predictors
plus a further smooth field that no predictor explains. Neighbouring points
therefore share both predictor values and unexplained risk, the situation in
which random cross-validation overestimates performance.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from spatial_cv.config import SyntheticDataConfig
from spatial_cv.data.backend import DataBackend
from spatial_cv.data.observations import ObservationSet


class SyntheticGenerator:
    """Generates a balanced sample of positives and negatives.

    Candidate locations are drawn uniformly, labelled by a Bernoulli draw of
    their modelled probability, then n_positive positives and n_negative
    negatives are sampled from the candidates (case-control style, as in
    landslide inventories with pseudo-absences).
    """

    def __init__(self, cfg: SyntheticDataConfig | None = None):
        self.cfg = cfg or SyntheticDataConfig()
        self.rng = np.random.default_rng(self.cfg.random_seed)

        # Field parameters fixed at init so every sample shares the same landscape
        self._predictor_fields = [self._generate_field() for _ in range(self.cfg.n_predictors)]
        self._residual_field = self._generate_field()
        self._coefficients = self._adjust_array_length(
            np.array(self.cfg.coefficients, dtype=np.float64), self.cfg.n_predictors
        )

    def _adjust_array_length(self, arr: np.ndarray, target_len: int) -> np.ndarray:
        """Pad with zeros or truncate array to target length."""
        if len(arr) < target_len:
            return np.pad(arr, (0, target_len - len(arr)))
        return arr[:target_len]

    def _generate_field(self) -> tuple[np.ndarray, np.ndarray]:
        """Random bump centres (m, 2) and signed weights (m,)."""
        m = self.cfg.n_field_centers
        centers = self.rng.uniform(0, self.cfg.extent, size=(m, 2))
        weights = self.rng.normal(0, 1, size=m)
        return centers, weights

    def _evaluate_field(self, field: tuple[np.ndarray, np.ndarray], coords: np.ndarray) -> np.ndarray:
        """Evaluate a field at coords and standardize it."""
        centers, weights = field
        sq_dist = ((coords[:, None, :] - centers[None, :, :]) ** 2).sum(axis=2)
        values = np.exp(-sq_dist / (2 * self.cfg.length_scale**2)) @ weights
        std = values.std()
        return (values - values.mean()) / std if std > 0 else values - values.mean()

    def _sample_candidates(self, n_samples: int) -> pd.DataFrame:
        """
        Sample labelled candidate locations.

        Args:
            n_samples: Number of candidates.

        Returns:
            DataFrame with x, y, predictor columns (x0, x1, ...) and 'response'.
        """
        coords = self.rng.uniform(0, self.cfg.extent, size=(n_samples, 2))
        predictors = np.column_stack(
            [self._evaluate_field(f, coords) for f in self._predictor_fields]
        )
        residual = self._evaluate_field(self._residual_field, coords)

        logit = (
            self.cfg.intercept
            + predictors @ self._coefficients
            + self.cfg.residual_scale * residual
        )
        prob = 1.0 / (1.0 + np.exp(-logit))
        response = self.rng.binomial(1, prob)

        feature_cols = [f"x{i}" for i in range(self.cfg.n_predictors)]
        df = pd.DataFrame(predictors, columns=feature_cols)
        df.insert(0, "x", coords[:, 0])
        df.insert(1, "y", coords[:, 1])
        df["response"] = response
        return df

    def generate(self) -> pd.DataFrame:
        """
        Generate the balanced sample.

        Returns:
            DataFrame with columns id, x, y, x0..x{p-1}, response, containing
            n_positive rows with response 1 and n_negative with response 0.
        """
        n_pos, n_neg = self.cfg.n_positive, self.cfg.n_negative
        candidates = self._sample_candidates(self.cfg.candidate_multiplier * (n_pos + n_neg))

        positives = np.flatnonzero(candidates["response"].to_numpy() == 1)
        negatives = np.flatnonzero(candidates["response"].to_numpy() == 0)
        if len(positives) < n_pos or len(negatives) < n_neg:
            raise ValueError(
                f"Only {len(positives)} positive / {len(negatives)} negative candidates "
                f"for a requested {n_pos} / {n_neg}; increase candidate_multiplier"
            )

        chosen = np.concatenate([
            self.rng.choice(positives, size=n_pos, replace=False),
            self.rng.choice(negatives, size=n_neg, replace=False),
        ])
        df = candidates.iloc[np.sort(chosen)].reset_index(drop=True)
        df.insert(0, "id", np.arange(len(df)))
        return df

    def generate_observations(self) -> ObservationSet:
        """Generate the balanced sample as an ObservationSet."""
        return ObservationSet.from_dataframe(
            self.generate(),
            response_col="response",
            coord_cols=("x", "y"),
            id_col="id",
        )


class SyntheticBackend(DataBackend):
    """Backend serving a generated sample. Generated once per instance."""

    name = "synthetic"

    def __init__(self, cfg: SyntheticDataConfig | None = None):
        self.cfg = cfg or SyntheticDataConfig()
        self._observations: ObservationSet | None = None

    def load(self) -> ObservationSet:
        if self._observations is None:
            self._observations = SyntheticGenerator(self.cfg).generate_observations()
        return self._observations
