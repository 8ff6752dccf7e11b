"""
Logistic regression (logit-link GLM), the reference learner.

Fitted by maximum likelihood; penalty is off by default so coefficients match
a classical binomial GLM.
"""

from __future__ import annotations

import numpy as np
from sklearn.linear_model import LogisticRegression

from spatial_cv.config import LogisticRegressionConfig
from spatial_cv.errors import ModelFitError
from spatial_cv.models.base import ModelAdapter, check_training_data


def check_full_rank(X: np.ndarray, fit_intercept: bool = True) -> None:
    """Raise ModelFitError if the design matrix is rank-deficient.

    Args:
        X: Predictor matrix (n_samples, n_features).
        fit_intercept: Whether an intercept column is part of the design.
    """
    design = np.column_stack([np.ones(len(X)), X]) if fit_intercept else X
    n_params = design.shape[1]
    if len(design) < n_params:
        raise ModelFitError(
            f"Training split has {len(design)} rows for {n_params} parameters"
        )
    rank = np.linalg.matrix_rank(design)
    if rank < n_params:
        raise ModelFitError(
            f"Design matrix is rank-deficient (rank {rank} < {n_params} parameters)",
            suggestion="Drop constant or collinear predictors.",
            details={"rank": int(rank), "n_params": int(n_params)},
        )


class LogisticRegressionModel(ModelAdapter):
    """Binomial GLM with logit link."""

    name = "logistic_regression"

    def __init__(self, cfg: LogisticRegressionConfig | None = None):
        """Initialize model with config.

        Args:
            cfg: Configuration. Uses defaults if None.
        """
        self.cfg = cfg or LogisticRegressionConfig()

    def _build(self) -> LogisticRegression:
        params = dict(
            solver=self.cfg.solver,
            max_iter=self.cfg.max_iter,
            fit_intercept=self.cfg.fit_intercept,
            random_state=self.cfg.random_seed,
        )
        # Unpenalized is C=inf and ridge is the default penalty; other
        # penalties still need the (deprecated) penalty argument
        if self.cfg.penalty is None:
            params["C"] = np.inf
        elif self.cfg.penalty == "l2":
            params["C"] = self.cfg.C
        else:
            params.update(penalty=self.cfg.penalty, C=self.cfg.C)
        return LogisticRegression(**params)

    def fit(self, X: np.ndarray, y: np.ndarray) -> LogisticRegression:
        """Fit model on training data.

        Args:
            X: Feature matrix (n_samples, n_features).
            y: Binary labels (0/1).

        Returns:
            The fitted sklearn estimator.
        """
        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y)
        check_training_data(X, y)
        if self.cfg.penalty is None:
            check_full_rank(X, self.cfg.fit_intercept)

        model = self._build()
        try:
            model.fit(X, y)
        except ValueError as e:
            raise ModelFitError(f"Logistic regression failed to fit: {e}") from e
        return model

    def predict(self, state: LogisticRegression, X: np.ndarray) -> np.ndarray:
        """Predict probability of the positive class.

        Args:
            state: Fitted estimator from fit().
            X: Feature matrix (n_samples, n_features).

        Returns:
            P(y=1) for each sample.
        """
        return state.predict_proba(np.asarray(X, dtype=np.float64))[:, 1]
