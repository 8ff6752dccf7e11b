"""
Error taxonomy for spatial cross-validation runs.

Errors are grouped by the scope they invalidate:
- Run setup: DataValidationError, ParameterError (raised before any unit runs)
- Repetition: PartitionError
- Unit (one repetition x fold): DegenerateFoldError, UndefinedMetricError, ModelFitError
- Whole run: MetricRangeError, ResamplingAbortedError
"""

from __future__ import annotations

from typing import Any, Optional


class SpatialCVError(Exception):
    """Base exception for spatial_cv errors."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize error.

        Args:
            message: Primary error message.
            suggestion: Optional suggestion for fixing the error.
            details: Optional dictionary with identifying context
                (e.g. repetition and fold).
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class DataValidationError(SpatialCVError):
    """Observation data violates the observation set invariants."""


class ParameterError(SpatialCVError):
    """Invalid resampling parameters."""


class PartitionError(SpatialCVError):
    """Clustering could not produce k non-empty folds after all retries."""


class DegenerateFoldError(SpatialCVError):
    """A fold left the train or test set unusable (e.g. empty)."""


class UndefinedMetricError(DegenerateFoldError):
    """The metric is undefined on this fold (e.g. AUC with one class)."""


class ModelFitError(SpatialCVError):
    """The model could not be fit on a training split."""


class MetricRangeError(SpatialCVError):
    """A metric value fell outside its valid range. Always run-fatal."""


class ResamplingAbortedError(SpatialCVError):
    """Too many units failed for the run's summary to be trusted."""


# Errors confined to a single (repetition, fold) unit
UNIT_ERRORS = (DegenerateFoldError, ModelFitError)


def format_parameter_error(
    parameter_name: str,
    value: Any,
    constraint: Optional[str] = None,
) -> str:
    """Format a standardized parameter error message.

    Args:
        parameter_name: Name of the invalid parameter.
        value: Invalid value that was provided.
        constraint: Constraint that was violated (optional).

    Returns:
        Formatted error message string.
    """
    parts = [f"Invalid value for parameter '{parameter_name}': {value}"]
    if constraint:
        parts.append(f"Constraint: {constraint}")
    return "\n".join(parts)


def raise_parameter_error(
    parameter_name: str,
    value: Any,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized ParameterError.

    Raises:
        ParameterError: Always.
    """
    raise ParameterError(
        format_parameter_error(parameter_name, value, constraint),
        suggestion=suggestion,
        details={"parameter": parameter_name, "value": value},
    )
