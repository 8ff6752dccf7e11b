"""
Fold assignment and resampling plan construction.

Implements:
- SpatialPartitioner: k-means on coordinates, one cluster per fold
- RandomPartitioner: shuffled KFold, the non-spatial baseline
- Per-repetition seed derivation from a single seed base
- Resampling plan builder for R repetitions x K folds

Partitioners only ever see coordinates, never predictors or response.
"""

from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.cluster import KMeans
from sklearn.exceptions import ConvergenceWarning
from sklearn.model_selection import KFold

from spatial_cv.errors import (
    DataValidationError,
    PartitionError,
    raise_parameter_error,
)

logger = logging.getLogger(__name__)

# Seeds handed to sklearn must fit in a uint32
_MAX_SEED = 2**32 - 1


@dataclass(frozen=True)
class FoldAssignment:
    """Fold index per observation, aligned with the observation set order.

    Attributes:
        labels: Fold index in [0, k) for each observation.
        k: Number of folds.
        seed: Seed of the clustering run that produced the labels.
        n_attempts: Number of clustering runs needed (1 = no retry).
    """

    labels: np.ndarray
    k: int
    seed: Optional[int] = None
    n_attempts: int = 1

    def __post_init__(self) -> None:
        labels = np.asarray(self.labels, dtype=np.int64)
        if labels.ndim != 1:
            raise ValueError(f"labels must be 1-D, got shape {labels.shape}")
        if len(labels) and (labels.min() < 0 or labels.max() >= self.k):
            raise ValueError(f"Fold labels must lie in [0, {self.k})")
        labels.flags.writeable = False
        object.__setattr__(self, "labels", labels)

    def __len__(self) -> int:
        return len(self.labels)

    def fold_sizes(self) -> np.ndarray:
        """Number of observations in each fold, shape (k,)."""
        return np.bincount(self.labels, minlength=self.k)

    def fold_indices(self, fold: int) -> np.ndarray:
        """Row positions assigned to one fold."""
        return np.flatnonzero(self.labels == fold)

    def as_mapping(self, ids: Sequence[Any]) -> Dict[Any, int]:
        """Return the assignment as observation id -> fold index."""
        if len(ids) != len(self.labels):
            raise ValueError(
                f"Got {len(ids)} ids for an assignment of {len(self.labels)} observations"
            )
        return {obs_id: int(fold) for obs_id, fold in zip(list(ids), self.labels)}


class Partitioner(ABC):
    """Assigns each coordinate to one of k folds."""

    name: str = "partitioner"

    @abstractmethod
    def partition(
        self,
        coordinates: np.ndarray,
        k: int,
        seed: Optional[int] = None,
    ) -> FoldAssignment:
        """Return a fold assignment for coordinates.

        Args:
            coordinates: Array of shape (n, 2).
            k: Number of folds (>= 2).
            seed: Random seed. If None, fresh entropy is used.
        """


def _check_partition_args(coordinates: np.ndarray, k: int) -> np.ndarray:
    coords = np.asarray(coordinates, dtype=np.float64)
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise DataValidationError(f"coordinates must have shape (n, 2), got {coords.shape}")
    if not isinstance(k, (int, np.integer)) or k < 2:
        raise_parameter_error("k", k, constraint="integer >= 2")
    if len(coords) < k:
        raise_parameter_error(
            "k",
            k,
            constraint=f"k must not exceed the number of observations ({len(coords)})",
        )
    return coords


class SpatialPartitioner(Partitioner):
    """Spatially compact folds from k-means clustering of coordinates.

    Each cluster becomes one fold, so neighbouring observations are held out
    together. k-means initialization is random, which is what makes repeated
    partitions differ between repetitions.

    If a run yields fewer than k non-empty clusters (e.g. fewer than k
    distinct locations), clustering is retried with a new initialization up
    to max_retries times before PartitionError is raised.
    """

    name = "spatial"

    def __init__(self, max_retries: int = 10, n_init: int = 1):
        """Initialize partitioner.

        Args:
            max_retries: Additional clustering runs allowed after the first.
            n_init: k-means initializations per run (best inertia wins).
        """
        if max_retries < 0:
            raise_parameter_error("max_retries", max_retries, constraint=">= 0")
        self.max_retries = max_retries
        self.n_init = n_init

    def partition(
        self,
        coordinates: np.ndarray,
        k: int,
        seed: Optional[int] = None,
    ) -> FoldAssignment:
        coords = _check_partition_args(coordinates, k)
        rng = np.random.default_rng(seed)

        n_attempts = self.max_retries + 1
        for attempt in range(1, n_attempts + 1):
            run_seed = int(rng.integers(0, _MAX_SEED))
            with warnings.catch_warnings():
                # Duplicate points make KMeans warn; the empty-cluster check below handles it
                warnings.simplefilter("ignore", ConvergenceWarning)
                kmeans = KMeans(n_clusters=k, n_init=self.n_init, random_state=run_seed)
                labels = kmeans.fit_predict(coords)

            sizes = np.bincount(labels, minlength=k)
            if np.all(sizes > 0):
                if attempt > 1:
                    logger.debug("Spatial partition succeeded after %d attempts", attempt)
                return FoldAssignment(labels=labels, k=k, seed=run_seed, n_attempts=attempt)

            logger.debug(
                "Attempt %d/%d produced %d empty cluster(s); retrying",
                attempt,
                n_attempts,
                int(np.sum(sizes == 0)),
            )

        n_distinct = len(np.unique(coords, axis=0))
        raise PartitionError(
            f"k-means could not produce {k} non-empty folds after {n_attempts} attempts",
            suggestion=(
                f"The data has {n_distinct} distinct locations; "
                "use fewer folds or more spatially spread observations."
            ),
            details={"k": k, "n_attempts": n_attempts, "n_distinct_locations": n_distinct},
        )


class RandomPartitioner(Partitioner):
    """Non-spatial folds from a shuffled KFold split.

    Ignores coordinate values entirely; used as the conventional
    cross-validation baseline.
    """

    name = "random"

    def partition(
        self,
        coordinates: np.ndarray,
        k: int,
        seed: Optional[int] = None,
    ) -> FoldAssignment:
        coords = _check_partition_args(coordinates, k)
        run_seed = int(np.random.default_rng(seed).integers(0, _MAX_SEED))
        kf = KFold(n_splits=k, shuffle=True, random_state=run_seed)
        labels = np.empty(len(coords), dtype=np.int64)
        for fold, (_, test_idx) in enumerate(kf.split(coords)):
            labels[test_idx] = fold
        return FoldAssignment(labels=labels, k=k, seed=run_seed)


def derive_repetition_seeds(
    n_repetitions: int,
    seed_base: Optional[int] = None,
) -> List[int]:
    """Derive one independent seed per repetition.

    Seeds come from numpy's SeedSequence spawning, so repetition r always
    gets the same seed for a given seed_base regardless of execution order.

    Args:
        n_repetitions: Number of repetitions.
        seed_base: Base seed. If None, fresh OS entropy is used.

    Returns:
        List of n_repetitions integer seeds.
    """
    root = np.random.SeedSequence(seed_base)
    return [int(child.generate_state(1)[0]) for child in root.spawn(n_repetitions)]


@dataclass
class ResamplingUnit:
    """One (repetition, fold) fit/evaluate unit.

    Stores indices rather than data; the observation set is shared read-only.
    """

    repetition: int
    fold: int
    train_indices: np.ndarray
    test_indices: np.ndarray
    seed: Optional[int] = None
    key: str = field(init=False)

    def __post_init__(self) -> None:
        self.key = f"rep={self.repetition}|fold={self.fold}"
        if np.intersect1d(self.train_indices, self.test_indices).size:
            raise DataValidationError(
                f"Unit {self.key}: train and test sets overlap",
                details={"repetition": self.repetition, "fold": self.fold},
            )

    @property
    def n_train(self) -> int:
        return len(self.train_indices)

    @property
    def n_test(self) -> int:
        return len(self.test_indices)


@dataclass
class RepetitionFailure:
    """A repetition whose fold assignment could not be built."""

    repetition: int
    seed: Optional[int]
    error: Exception


def split_assignment(
    assignment: FoldAssignment,
    repetition: int,
    seed: Optional[int] = None,
) -> List[ResamplingUnit]:
    """Turn a fold assignment into one train/test unit per fold.

    For fold f: test = rows assigned to f, train = all other rows.
    Empty sets are kept; the runner rejects them per unit.
    """
    all_idx = np.arange(len(assignment))
    units = []
    for fold in range(assignment.k):
        test_idx = assignment.fold_indices(fold)
        units.append(
            ResamplingUnit(
                repetition=repetition,
                fold=fold,
                train_indices=np.setdiff1d(all_idx, test_idx, assume_unique=True),
                test_indices=test_idx,
                seed=seed,
            )
        )
    return units


def build_resampling_plan(
    coordinates: np.ndarray,
    k: int,
    repetitions: int,
    partitioner: Partitioner,
    seed_base: Optional[int] = None,
) -> Tuple[List[ResamplingUnit], List[RepetitionFailure]]:
    """Build the full resampling plan for R repetitions x K folds.

    Each repetition gets a fresh fold assignment from an independently
    seeded partitioner call. A PartitionError fails only its repetition.

    Args:
        coordinates: Array of shape (n, 2).
        k: Number of folds.
        repetitions: Number of repetitions.
        partitioner: Fold assignment strategy.
        seed_base: Base seed for reproducibility.

    Returns:
        (units ordered by repetition then fold, failed repetitions).
    """
    if repetitions < 1:
        raise_parameter_error("repetitions", repetitions, constraint="integer >= 1")

    units: List[ResamplingUnit] = []
    failures: List[RepetitionFailure] = []

    for repetition, seed in enumerate(derive_repetition_seeds(repetitions, seed_base)):
        try:
            assignment = partitioner.partition(coordinates, k, seed=seed)
        except PartitionError as e:
            logger.warning(
                "Repetition %d: partitioning failed, excluding its %d folds: %s",
                repetition,
                k,
                e.message,
            )
            failures.append(RepetitionFailure(repetition=repetition, seed=seed, error=e))
            continue
        units.extend(split_assignment(assignment, repetition, seed=seed))

    return units, failures
