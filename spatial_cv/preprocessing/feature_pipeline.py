"""
Column extraction from an observation table.

Splits a DataFrame into coordinate, predictor and response arrays.
Predictors are every column that is not the response, a coordinate or the id,
unless listed explicitly.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd


class FeaturePipeline:
    """Converts an observation DataFrame into numpy arrays.

    Coordinates are kept out of the predictor matrix unless the caller lists
    them in predictor_cols, so the default partitioning never leaks them into
    the model.
    """

    def __init__(
        self,
        response_col: str,
        coord_cols: Sequence[str] = ("x", "y"),
        predictor_cols: List[str] | None = None,
        id_col: str | None = None,
    ):
        """Initialize pipeline.

        Args:
            response_col: Name of the binary response column.
            coord_cols: Names of the two coordinate columns (x, y).
            predictor_cols: List of predictor column names to use.
                If None, uses all remaining columns.
            id_col: Optional column holding observation ids.
        """
        if len(coord_cols) != 2:
            raise ValueError(f"coord_cols must name exactly 2 columns, got {list(coord_cols)}")
        self.response_col = response_col
        self.coord_cols = list(coord_cols)
        self.predictor_cols = predictor_cols
        self.id_col = id_col
        self._fitted_cols: List[str] | None = None

    def fit(self, df: pd.DataFrame) -> "FeaturePipeline":
        """Resolve predictor columns against df.

        Args:
            df: Input dataframe.

        Returns:
            Self for chaining.
        """
        required = [self.response_col, *self.coord_cols]
        if self.id_col is not None:
            required.append(self.id_col)
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise KeyError(f"Missing required columns: {missing}")

        if self.predictor_cols is not None:
            absent = [c for c in self.predictor_cols if c not in df.columns]
            if absent:
                raise KeyError(f"Missing predictor columns: {absent}")
            self._fitted_cols = list(self.predictor_cols)
        else:
            reserved = set(required)
            self._fitted_cols = [c for c in df.columns if c not in reserved]

        return self

    def transform(self, df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Extract arrays from df.

        Args:
            df: Input dataframe.

        Returns:
            (ids, coordinates (n, 2), predictors (n, p), response (n,)).
        """
        if self._fitted_cols is None:
            raise RuntimeError("Pipeline not fitted. Call fit() first.")

        coords = df[self.coord_cols].to_numpy(dtype=np.float64)
        X = df[self._fitted_cols].to_numpy(dtype=np.float64)
        response = df[self.response_col].to_numpy()
        if self.id_col is not None:
            ids = df[self.id_col].to_numpy()
        else:
            ids = df.index.to_numpy()
        return ids, coords, X, response

    def fit_transform(self, df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Fit and transform in one step."""
        return self.fit(df).transform(df)

    @property
    def feature_names(self) -> List[str]:
        """Get fitted predictor column names."""
        if self._fitted_cols is None:
            raise RuntimeError("Pipeline not fitted.")
        return self._fitted_cols
