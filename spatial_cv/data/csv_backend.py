"""
CSV-based data backend.

Loads a table with one row per observation (coordinates, predictors and a
binary response column) and an optional meta.json next to it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from spatial_cv.data.backend import DataBackend
from spatial_cv.data.observations import ObservationSet
from spatial_cv.errors import DataValidationError

logger = logging.getLogger(__name__)


class CSVBackend(DataBackend):
    """Backend that loads observations from a CSV file.

    The file is read once; load() returns the same read-only ObservationSet
    on every call.
    """

    name = "csv"

    def __init__(
        self,
        path: str | Path,
        response_col: str,
        coord_cols: Sequence[str] = ("x", "y"),
        predictor_cols: Optional[List[str]] = None,
        id_col: Optional[str] = None,
        dropna: bool = False,
    ):
        """Initialize CSV backend.

        Args:
            path: Path to the CSV file.
            response_col: Binary response column.
            coord_cols: The two coordinate columns.
            predictor_cols: Predictor columns. If None, all remaining columns.
            id_col: Id column. If None, row numbers are used.
            dropna: Drop rows with missing values in the used columns
                instead of failing validation.
        """
        self.path = Path(path)
        self.response_col = response_col
        self.coord_cols = list(coord_cols)
        self.predictor_cols = predictor_cols
        self.id_col = id_col
        self.dropna = dropna

        self._observations: Optional[ObservationSet] = None
        self._meta: dict = {}

    def _load_data(self) -> ObservationSet:
        """Read and validate the CSV."""
        if not self.path.exists():
            raise FileNotFoundError(f"Required file not found: {self.path}")

        df = pd.read_csv(self.path)

        if self.dropna:
            used = [self.response_col, *self.coord_cols]
            used += self.predictor_cols if self.predictor_cols is not None else list(df.columns)
            n_before = len(df)
            df = df.dropna(subset=[c for c in dict.fromkeys(used) if c in df.columns])
            if len(df) < n_before:
                logger.info("Dropped %d rows with missing values from %s", n_before - len(df), self.path)
            df = df.reset_index(drop=True)

        if self.response_col not in df.columns:
            raise DataValidationError(f"{self.path.name} must have '{self.response_col}' column")

        # Load metadata if available
        meta_path = self.path.parent / "meta.json"
        if meta_path.exists():
            with open(meta_path) as f:
                self._meta = json.load(f)

        return ObservationSet.from_dataframe(
            df,
            response_col=self.response_col,
            coord_cols=self.coord_cols,
            predictor_cols=self.predictor_cols,
            id_col=self.id_col,
        )

    def load(self) -> ObservationSet:
        if self._observations is None:
            self._observations = self._load_data()
            logger.info("Loaded %d observations from %s", len(self._observations), self.path)
        return self._observations

    @property
    def metadata(self) -> dict:
        """Return metadata from meta.json if available."""
        self.load()
        return self._meta
