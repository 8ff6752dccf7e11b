"""
Observation records and the read-only observation set.

The observation set is the contract every data source must produce for the
resampling runner: ids, 2-D coordinates, a predictor matrix with a fixed
column order, and a binary response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from spatial_cv.errors import DataValidationError
from spatial_cv.preprocessing.feature_pipeline import FeaturePipeline


@dataclass(frozen=True)
class Observation:
    """A single labelled location.

    Attributes:
        id: Observation identifier (unique within a set).
        coordinates: (x, y) location.
        predictors: Ordered mapping predictor name -> value.
        response: True for the positive class (e.g. landslide present).
    """

    id: Any
    coordinates: Tuple[float, float]
    predictors: Mapping[str, float]
    response: bool

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "coordinates", (float(self.coordinates[0]), float(self.coordinates[1]))
        )
        object.__setattr__(
            self,
            "predictors",
            MappingProxyType({str(k): float(v) for k, v in self.predictors.items()}),
        )
        object.__setattr__(self, "response", bool(self.response))


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class ObservationSet:
    """Ordered, read-only collection of observations stored column-wise.

    Attributes:
        ids: Observation ids, shape (n,).
        coordinates: Coordinates, shape (n, 2).
        X: Predictor matrix, shape (n, p).
        y: Binary response as 0/1 integers, shape (n,).
        predictor_names: Predictor names in column order of X.
    """

    ids: np.ndarray
    coordinates: np.ndarray
    X: np.ndarray
    y: np.ndarray
    predictor_names: Tuple[str, ...]
    _id_index: Dict[Any, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate invariants and freeze the arrays."""
        ids = np.asarray(self.ids)
        coords = np.asarray(self.coordinates, dtype=np.float64)
        X = np.asarray(self.X, dtype=np.float64)
        y_raw = np.asarray(self.y)
        names = tuple(str(n) for n in self.predictor_names)

        n = len(ids)
        if n == 0:
            raise DataValidationError("Observation set must not be empty")

        if coords.ndim != 2 or coords.shape != (n, 2):
            raise DataValidationError(
                f"coordinates must have shape ({n}, 2), got {coords.shape}"
            )
        if X.ndim != 2 or X.shape != (n, len(names)):
            raise DataValidationError(
                f"X must have shape ({n}, {len(names)}), got {X.shape}"
            )
        if y_raw.shape != (n,):
            raise DataValidationError(f"y must have shape ({n},), got {y_raw.shape}")

        if len(set(names)) != len(names):
            raise DataValidationError(f"Predictor names must be unique, got {list(names)}")
        if not np.all(np.isfinite(coords)):
            raise DataValidationError("coordinates contain non-finite values")
        if not np.all(np.isfinite(X)):
            raise DataValidationError(
                "Predictors contain non-finite values",
                suggestion="Impute or drop missing predictor values before resampling.",
            )

        unique = set(pd.unique(y_raw).tolist())
        if not unique.issubset({0, 1, True, False}):
            raise DataValidationError(f"Response must be binary (0/1 or bool), got {unique}")
        y = y_raw.astype(np.int64)

        id_index = {}
        for i, obs_id in enumerate(ids.tolist()):
            if obs_id in id_index:
                raise DataValidationError(f"Duplicate observation id: {obs_id!r}")
            id_index[obs_id] = i

        object.__setattr__(self, "ids", _readonly(ids))
        object.__setattr__(self, "coordinates", _readonly(coords))
        object.__setattr__(self, "X", _readonly(X))
        object.__setattr__(self, "y", _readonly(y))
        object.__setattr__(self, "predictor_names", names)
        object.__setattr__(self, "_id_index", id_index)

    @classmethod
    def from_records(cls, observations: Iterable[Observation]) -> ObservationSet:
        """Build a set from Observation records.

        All records must share the same predictor names; column order follows
        the first record.
        """
        records = list(observations)
        if not records:
            raise DataValidationError("Observation set must not be empty")

        names = tuple(records[0].predictors.keys())
        for obs in records[1:]:
            if set(obs.predictors.keys()) != set(names):
                raise DataValidationError(
                    f"Observation {obs.id!r} has predictors "
                    f"{sorted(obs.predictors)}, expected {sorted(names)}"
                )

        return cls(
            ids=np.array([obs.id for obs in records], dtype=object),
            coordinates=np.array([obs.coordinates for obs in records], dtype=np.float64),
            X=np.array(
                [[obs.predictors[name] for name in names] for obs in records],
                dtype=np.float64,
            ).reshape(len(records), len(names)),
            y=np.array([int(obs.response) for obs in records], dtype=np.int64),
            predictor_names=names,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        response_col: str,
        coord_cols: Sequence[str] = ("x", "y"),
        predictor_cols: List[str] | None = None,
        id_col: str | None = None,
    ) -> ObservationSet:
        """Build a set from a table.

        Args:
            df: Table with one row per observation.
            response_col: Binary response column.
            coord_cols: The two coordinate columns.
            predictor_cols: Predictor columns. If None, all remaining columns.
            id_col: Id column. If None, the DataFrame index is used.
        """
        pipeline = FeaturePipeline(
            response_col=response_col,
            coord_cols=coord_cols,
            predictor_cols=predictor_cols,
            id_col=id_col,
        )
        try:
            ids, coords, X, response = pipeline.fit_transform(df)
        except KeyError as e:
            raise DataValidationError(str(e)) from e
        except ValueError as e:
            raise DataValidationError(
                f"Could not convert columns to numeric arrays: {e}",
                suggestion="Encode categorical predictors numerically before resampling.",
            ) from e
        return cls(
            ids=ids,
            coordinates=coords,
            X=X,
            y=response,
            predictor_names=tuple(pipeline.feature_names),
        )

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self) -> Iterator[Observation]:
        for i in range(len(self)):
            yield self[i]

    def __getitem__(self, i: int) -> Observation:
        return Observation(
            id=self.ids[i],
            coordinates=(self.coordinates[i, 0], self.coordinates[i, 1]),
            predictors=dict(zip(self.predictor_names, self.X[i].tolist())),
            response=bool(self.y[i]),
        )

    def index_of(self, obs_id: Any) -> int:
        """Row position of an observation id."""
        try:
            return self._id_index[obs_id]
        except KeyError:
            raise KeyError(f"Unknown observation id: {obs_id!r}") from None

    def subset(self, indices: np.ndarray) -> ObservationSet:
        """Return a new set restricted to the given row positions."""
        indices = np.asarray(indices, dtype=np.int64)
        return ObservationSet(
            ids=self.ids[indices],
            coordinates=self.coordinates[indices],
            X=self.X[indices],
            y=self.y[indices],
            predictor_names=self.predictor_names,
        )

    @property
    def n_positive(self) -> int:
        """Number of positive responses."""
        return int(self.y.sum())

    @property
    def n_negative(self) -> int:
        """Number of negative responses."""
        return len(self) - self.n_positive

    @property
    def n_distinct_locations(self) -> int:
        """Number of distinct coordinate pairs."""
        return len(np.unique(self.coordinates, axis=0))

    def to_frame(self) -> pd.DataFrame:
        """Return the set as a DataFrame (id, x, y, predictors..., response)."""
        df = pd.DataFrame(self.X, columns=list(self.predictor_names))
        df.insert(0, "id", self.ids)
        df.insert(1, "coord_x", self.coordinates[:, 0])
        df.insert(2, "coord_y", self.coordinates[:, 1])
        df["response"] = self.y
        return df

    def summary(self) -> dict:
        """Return summary statistics about the set."""
        xmin, ymin = self.coordinates.min(axis=0)
        xmax, ymax = self.coordinates.max(axis=0)
        return {
            "n_observations": len(self),
            "n_positive": self.n_positive,
            "n_negative": self.n_negative,
            "prevalence": float(self.y.mean()),
            "n_predictors": len(self.predictor_names),
            "predictor_names": list(self.predictor_names),
            "n_distinct_locations": self.n_distinct_locations,
            "bbox": [float(xmin), float(ymin), float(xmax), float(ymax)],
        }
