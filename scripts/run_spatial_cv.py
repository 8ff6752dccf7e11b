#!/usr/bin/env python
"""
Run repeated spatial cross-validation on a point dataset.

Partitions the observations into k spatially contiguous folds (k-means on
coordinates) for each of R repetitions, fits the model on k-1 folds, scores
the held-out fold and summarizes the R*k scores. With --compare-random the
same model is also evaluated with random folds and the two score
distributions are compared.

Usage:
    python scripts/run_spatial_cv.py --synthetic
    python scripts/run_spatial_cv.py --synthetic --compare-random --n-jobs 4
    python scripts/run_spatial_cv.py --data landslides.csv --response slides \\
        --x-col x --y-col y --folds 5 --repetitions 100

Results saved to experiments/run_{timestamp}/.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import numpy as np

from spatial_cv.config import (
    LogisticRegressionConfig,
    ResamplingConfig,
    SyntheticDataConfig,
    XGBoostConfig,
)
from spatial_cv.data.backend import DataBackend
from spatial_cv.data.csv_backend import CSVBackend
from spatial_cv.errors import SpatialCVError
from spatial_cv.experiments.comparison_runner import run_comparison
from spatial_cv.experiments.resampling_runner import ResamplingResult, run_from_config
from spatial_cv.io.synthetic_generator import SyntheticBackend
from spatial_cv.models.base import ModelAdapter
from spatial_cv.models.logistic_regression import LogisticRegressionModel
from spatial_cv.models.xgboost_model import XGBoostModel

logger = logging.getLogger("run_spatial_cv")


def convert_numpy(obj):
    """Convert numpy types to Python types for JSON serialization."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return None if np.isnan(obj) else float(obj)
    elif isinstance(obj, float) and np.isnan(obj):
        return None
    elif isinstance(obj, dict):
        return {k: convert_numpy(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy(i) for i in obj]
    return obj


def build_backend(args: argparse.Namespace) -> DataBackend:
    if args.data:
        predictors = args.predictors.split(",") if args.predictors else None
        return CSVBackend(
            args.data,
            response_col=args.response,
            coord_cols=(args.x_col, args.y_col),
            predictor_cols=predictors,
            id_col=args.id_col,
            dropna=args.dropna,
        )
    data_cfg = SyntheticDataConfig.from_yaml()
    if args.data_seed is not None:
        data_cfg = SyntheticDataConfig(**{**data_cfg.model_dump(), "random_seed": args.data_seed})
    return SyntheticBackend(data_cfg)


def build_model(name: str) -> ModelAdapter:
    if name == "xgboost":
        return XGBoostModel(XGBoostConfig.from_yaml())
    return LogisticRegressionModel(LogisticRegressionConfig.from_yaml())


def apply_overrides(cfg: ResamplingConfig, args: argparse.Namespace) -> ResamplingConfig:
    """Return a new config with CLI overrides applied (re-validated)."""
    overrides = {
        "folds": args.folds,
        "repetitions": args.repetitions,
        "partition_seed_base": args.seed,
        "n_jobs": args.n_jobs,
        "metric": args.metric,
        "deadline_seconds": args.deadline,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.evaluate_train:
        overrides["evaluate_train"] = True
    return ResamplingConfig(**{**cfg.model_dump(), **overrides})


def save_result(result: ResamplingResult, out_dir: Path, prefix: str = "") -> None:
    result.to_frame().to_csv(out_dir / f"{prefix}records.csv", index=False)
    result.failures_frame().to_csv(out_dir / f"{prefix}failures.csv", index=False)


def print_result(label: str, result: ResamplingResult) -> None:
    s = result.summary()
    print(f"  {label}: {result.metric} mean={s.mean:.4f} sd={s.std:.4f} "
          f"median={s.median:.4f} [2.5%={s.q025:.4f}, 97.5%={s.q975:.4f}]")
    print(f"    scored={s.n_scored} failed={s.n_failed} skipped={s.n_skipped} "
          f"of {result.n_units_expected}")


def main():
    parser = argparse.ArgumentParser(
        description="Repeated spatial k-fold cross-validation"
    )
    parser.add_argument(
        "--config", type=str, help="Resampling YAML (default: configs/resampling.yaml)"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--data", type=str, help="CSV file with one row per observation")
    source.add_argument(
        "--synthetic", action="store_true",
        help="Use synthetic autocorrelated data (default when --data is not given)",
    )
    parser.add_argument("--response", type=str, default="response", help="Binary response column")
    parser.add_argument("--x-col", type=str, default="x", help="Easting column")
    parser.add_argument("--y-col", type=str, default="y", help="Northing column")
    parser.add_argument("--id-col", type=str, help="Observation id column")
    parser.add_argument(
        "--predictors", type=str, help="Comma-separated predictor columns (default: all others)"
    )
    parser.add_argument("--dropna", action="store_true", help="Drop rows with missing values")
    parser.add_argument("--data-seed", type=int, help="Synthetic data seed (overrides config)")
    parser.add_argument("--folds", type=int, help="Number of folds k (overrides config)")
    parser.add_argument("--repetitions", type=int, help="Number of repetitions R (overrides config)")
    parser.add_argument("--seed", type=int, help="Partition seed base (overrides config)")
    parser.add_argument("--n-jobs", type=int, help="Worker threads (overrides config)")
    parser.add_argument("--metric", type=str, help="Metric name (overrides config)")
    parser.add_argument("--deadline", type=float, help="Wall-clock limit in seconds")
    parser.add_argument("--evaluate-train", action="store_true", help="Also score training folds")
    parser.add_argument(
        "--model", choices=["logistic", "xgboost"], default="logistic", help="Model to evaluate"
    )
    parser.add_argument(
        "--compare-random", action="store_true",
        help="Also run random (non-spatial) folds and compare",
    )
    parser.add_argument("--quiet", action="store_true", help="Hide progress bars")
    parser.add_argument(
        "--name", type=str, default="", help="Optional run name suffix"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = apply_overrides(ResamplingConfig.from_yaml(args.config), args)
    backend = build_backend(args)
    model = build_model(args.model)

    try:
        observations = backend.load()
    except (SpatialCVError, FileNotFoundError) as e:
        logger.error("Could not load data: %s", e)
        return 1

    # Create run directory
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_name = f"run_{timestamp}"
    if args.name:
        run_name += f"_{args.name}"
    run_dir = PROJECT_ROOT / "experiments" / run_name
    run_dir.mkdir(parents=True, exist_ok=True)

    print("=" * 70)
    print("Spatial cross-validation")
    print("=" * 70)
    print(f"  Output: {run_dir}")
    print(f"  Data: {backend.name} ({len(observations)} observations, "
          f"{observations.n_positive} positive / {observations.n_negative} negative)")
    print(f"  Predictors: {', '.join(observations.predictor_names)}")
    print(f"  Model: {model.name}")
    print(f"  Folds: {cfg.folds}  Repetitions: {cfg.repetitions}  Seed base: {cfg.partition_seed_base}")
    print("=" * 70)

    config = {
        "resampling_cfg": cfg.model_dump(),
        "model": model.name,
        "model_cfg": model.cfg.model_dump() if hasattr(model, "cfg") else None,
        "data": backend.get_summary(),
        "compare_random": args.compare_random,
    }
    with open(run_dir / "config.json", "w") as f:
        json.dump(convert_numpy(config), f, indent=2)

    try:
        if args.compare_random:
            result = run_comparison(observations, cfg, model_adapter=model, show_progress=not args.quiet)
            save_result(result.spatial, run_dir)
            save_result(result.random, run_dir, prefix="random_")
            summary = result.to_dict()
        else:
            result = run_from_config(observations, cfg, model_adapter=model, show_progress=not args.quiet)
            save_result(result, run_dir)
            summary = result.to_dict()
    except SpatialCVError as e:
        logger.error("Run failed: %s", e)
        partial = e.details.get("result")
        if isinstance(partial, ResamplingResult):
            save_result(partial, run_dir)
        return 1

    with open(run_dir / "summary.json", "w") as f:
        json.dump(convert_numpy(summary), f, indent=2)

    print(f"\n{'=' * 70}")
    if args.compare_random:
        print_result("spatial", result.spatial)
        print_result("random", result.random)
        c = result.comparison
        print(f"  optimism (random - spatial): {result.optimism:.4f}  "
              f"Mann-Whitney U={c.statistic:.1f} p={c.p_value:.3g}")
    else:
        print_result(result.partitioner, result)
    print(f"Results saved to: {run_dir}")
    print(f"{'=' * 70}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
