"""
Calibration checks for p-values generated under the null hypothesis.

Correctly calibrated p-values are Uniform(0, 1) under H0, so the observed
rejection rate at threshold alpha should equal alpha and the empirical CDF
should follow the identity line.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy.stats import kstest

from src.calibration.errors import DomainError, EmptyInputError, ShapeError

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = (0.01, 0.05, 0.1)


@dataclass(frozen=True)
class CalibrationReport:
    """Observed Type-I error rates of a p-value vector."""

    n: int
    rejection_rates: dict = field(default_factory=dict)
    ks_statistic: float = None
    ks_p_value: float = None

    def deviations(self) -> dict:
        """Observed minus nominal rejection rate for each threshold."""
        return {alpha: observed - alpha for alpha, observed in self.rejection_rates.items()}

    def direction(self, tolerance: float = 0.005) -> dict:
        """
        Classify each threshold as calibrated, conservative or anti-conservative.

        Parameters
        ----------
        tolerance : float, optional
            Absolute deviation below which a threshold counts as calibrated.
        """
        labels = {}
        for alpha, deviation in self.deviations().items():
            if abs(deviation) <= tolerance:
                labels[alpha] = "calibrated"
            elif deviation < 0:
                labels[alpha] = "conservative"
            else:
                labels[alpha] = "anti-conservative"
        return labels


def _as_pvalue_vector(pvalues) -> np.ndarray:
    if pvalues is None:
        raise EmptyInputError("p-values must not be empty")

    values = np.asarray(pvalues, dtype=float)
    if values.ndim != 1:
        raise ShapeError(f"p-values must be one-dimensional, got shape {values.shape}")
    if values.size == 0:
        raise EmptyInputError("p-values must not be empty")
    if np.isnan(values).any() or (values < 0).any() or (values > 1).any():
        raise DomainError("p-values must be between 0 and 1")
    return values


def _validate_thresholds(thresholds) -> tuple:
    thresholds = tuple(float(alpha) for alpha in thresholds)
    if len(thresholds) == 0:
        raise EmptyInputError("thresholds must not be empty")
    if any(not 0 < alpha < 1 for alpha in thresholds):
        raise DomainError(f"Thresholds must lie strictly between 0 and 1, got {thresholds}")
    return tuple(sorted(set(thresholds)))


def empirical_cdf(pvalues) -> np.ndarray:
    """
    Empirical CDF of a p-value vector.

    Returns
    -------
    np.ndarray
        Array of shape (n, 2) holding (sorted p-value, rank / n) pairs, ready
        to be compared against the identity line.
    """
    values = np.sort(_as_pvalue_vector(pvalues))
    ranks = np.arange(1, values.size + 1) / values.size
    return np.column_stack([values, ranks])


def max_ecdf_deviation(pvalues) -> float:
    """Largest absolute gap between the empirical CDF and the Uniform(0, 1) CDF."""
    values = _as_pvalue_vector(pvalues)
    return float(kstest(values, "uniform").statistic)


def evaluate(pvalues, thresholds=DEFAULT_THRESHOLDS) -> CalibrationReport:
    """
    Compute the observed rejection rate P(p < alpha) for each threshold.

    Parameters
    ----------
    pvalues : array-like
        Non-empty vector of p-values generated under the null.
    thresholds : iterable of float, optional
        Nominal significance levels. Defaults to (0.01, 0.05, 0.1).

    Returns
    -------
    CalibrationReport
        Rejection rates keyed by threshold, plus the Kolmogorov-Smirnov
        distance to Uniform(0, 1).

    Raises
    ------
    EmptyInputError
        If pvalues or thresholds are empty.
    DomainError
        If a p-value lies outside [0, 1] or a threshold outside (0, 1).
    """
    values = _as_pvalue_vector(pvalues)
    thresholds = _validate_thresholds(thresholds)

    rejection_rates = {alpha: float(np.mean(values < alpha)) for alpha in thresholds}
    ks_result = kstest(values, "uniform")

    return CalibrationReport(
        n=int(values.size),
        rejection_rates=rejection_rates,
        ks_statistic=float(ks_result.statistic),
        ks_p_value=float(ks_result.pvalue),
    )


def calibration_table(pvalues_by_method: dict, thresholds=DEFAULT_THRESHOLDS) -> pd.DataFrame:
    """
    Tabulate observed rejection rates for several methods side by side.

    Parameters
    ----------
    pvalues_by_method : dict
        {method_name: p-value vector}
    thresholds : iterable of float, optional
        Nominal significance levels (columns of the table).

    Returns
    -------
    pd.DataFrame
        One row per method, one column per threshold, plus a "nominal" row.
    """
    if not pvalues_by_method:
        raise EmptyInputError("No p-value vectors to tabulate")

    thresholds = _validate_thresholds(thresholds)
    rows = {"nominal": {alpha: alpha for alpha in thresholds}}
    for method, pvalues in pvalues_by_method.items():
        rows[method] = evaluate(pvalues, thresholds).rejection_rates

    table = pd.DataFrame.from_dict(rows, orient="index")
    table.columns.name = "alpha"
    return table
