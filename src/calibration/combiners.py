import logging
from enum import Enum

import numpy as np
from scipy.stats import combine_pvalues

from src.calibration.errors import DomainError, EmptyInputError, ShapeError

logger = logging.getLogger(__name__)

# Exact-zero p-values are clamped to these before log / quantile transforms
DEFAULT_FISHER_EPSILON = 1e-300
DEFAULT_STOUFFER_EPSILON = 1e-300
# Largest double below 1, keeps the Stouffer quantile of p = 1 finite
STOUFFER_UPPER_BOUND = np.nextafter(1.0, 0.0)


class MethodKind(Enum):
    """Supported p-value combination methods."""

    FISHER = "fisher"
    STOUFFER = "stouffer"
    MINP = "minp"
    MAXP = "maxp"


def as_pvalue_matrix(pvalues) -> np.ndarray:
    """
    Validate and convert a features x tests collection of p-values.

    Parameters
    ----------
    pvalues : array-like
        Nested sequence or 2-D array, one row per feature.

    Returns
    -------
    np.ndarray
        Float array of shape (features, tests).

    Raises
    ------
    ShapeError
        If rows have inconsistent lengths or the input is not two-dimensional.
    EmptyInputError
        If there are no features or no tests.
    DomainError
        If any value is NaN or lies outside [0, 1].
    """
    if pvalues is None:
        raise EmptyInputError("p-value matrix must not be empty")

    # Arrays and DataFrames carry a shape; nested sequences may be ragged
    if not hasattr(pvalues, "shape"):
        rows = list(pvalues)
        if len(rows) == 0:
            raise EmptyInputError("p-value matrix must not be empty")
        shapes = {np.shape(row) for row in rows}
        if len(shapes) > 1:
            raise ShapeError(f"Ragged p-value rows with shapes {sorted(shapes)}")
        pvalues = rows

    matrix = np.asarray(pvalues, dtype=float)

    if matrix.ndim != 2:
        raise ShapeError(f"p-value matrix must be 2-dimensional, got shape {matrix.shape}")
    if matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise EmptyInputError(f"p-value matrix must not be empty, got shape {matrix.shape}")
    if np.isnan(matrix).any():
        raise DomainError("p-value matrix contains NaN values")
    if (matrix < 0).any() or (matrix > 1).any():
        raise DomainError("p-values must be between 0 and 1")

    return matrix


def fisher_combiner(pvalues: np.ndarray, epsilon: float = DEFAULT_FISHER_EPSILON) -> np.ndarray:
    """
    Combine each row with Fisher's method.

    The statistic -2 * sum(log p) is compared against a chi-squared
    distribution with 2k degrees of freedom. Zeros are clamped to `epsilon`.
    """
    n_zeros = int(np.sum(pvalues < epsilon))
    if n_zeros > 0:
        logger.warning(f"Clamped {n_zeros} p-value(s) below {epsilon:g} before Fisher's method")

    result = combine_pvalues(np.maximum(pvalues, epsilon), method="fisher", axis=1)
    return result.pvalue


def stouffer_combiner(
    pvalues: np.ndarray, epsilon: float = DEFAULT_STOUFFER_EPSILON
) -> np.ndarray:
    """
    Combine each row with Stouffer's unweighted Z method.

    P-values are clipped to [epsilon, STOUFFER_UPPER_BOUND] so that rows
    holding both 0 and 1 stay finite.
    """
    clipped = np.clip(pvalues, epsilon, STOUFFER_UPPER_BOUND)
    result = combine_pvalues(clipped, method="stouffer", axis=1)
    return result.pvalue


def min_pvalue_combiner(pvalues: np.ndarray) -> np.ndarray:
    """Sidak-style minimum p-value (Tippett's method), assuming independent tests."""
    result = combine_pvalues(pvalues, method="tippett", axis=1)
    return result.pvalue


def max_pvalue_combiner(pvalues: np.ndarray) -> np.ndarray:
    """Maximum p-value raised to the number of tests, assuming independence."""
    k = pvalues.shape[1]
    return np.max(pvalues, axis=1) ** k


def combine(
    pvalues,
    method,
    fisher_epsilon: float = DEFAULT_FISHER_EPSILON,
    stouffer_epsilon: float = DEFAULT_STOUFFER_EPSILON,
) -> np.ndarray:
    """
    Combine a features x tests p-value matrix into one p-value per feature.

    Parameters
    ----------
    pvalues : array-like
        P-value matrix of shape (features, tests), values in [0, 1].
    method : MethodKind or str
        Combination method ("fisher", "stouffer", "minp" or "maxp").
    fisher_epsilon : float, optional
        Lower clamp applied before taking logarithms in Fisher's method.
    stouffer_epsilon : float, optional
        Lower clip applied before the normal quantile in Stouffer's method.
        The upper tail is clipped only to the largest double below 1.

    Returns
    -------
    np.ndarray
        Combined p-values, shape (features,), each in [0, 1].

    Raises
    ------
    ShapeError, DomainError, EmptyInputError
        On malformed input (see `as_pvalue_matrix`).
    ValueError
        If the method is unknown.
    """
    method = MethodKind(method)
    matrix = as_pvalue_matrix(pvalues)

    logger.debug(
        f"Combining {matrix.shape[0]} feature(s) x {matrix.shape[1]} test(s) "
        f"with {method.value}"
    )

    if method == MethodKind.FISHER:
        combined = fisher_combiner(matrix, epsilon=fisher_epsilon)
    elif method == MethodKind.STOUFFER:
        combined = stouffer_combiner(matrix, epsilon=stouffer_epsilon)
    elif method == MethodKind.MINP:
        combined = min_pvalue_combiner(matrix)
    else:
        combined = max_pvalue_combiner(matrix)

    return combined
