import logging

import numpy as np
from scipy.linalg import toeplitz
from scipy.stats import mannwhitneyu, norm, ttest_ind

from src.calibration.errors import DomainError, NumericalError, ShapeError

logger = logging.getLogger(__name__)

# Tolerance on the smallest eigenvalue when accepting a singular correlation matrix
PSD_TOLERANCE = 1e-10


def rank_to_pearson(r: float) -> float:
    """
    Convert a rank correlation to the Pearson correlation of the latent normals.

    Uses rho = 2 * sin(r * pi / 6), which inverts the Spearman correlation of
    a Gaussian copula.

    Raises
    ------
    DomainError
        If r is not a finite value in [-1, 1].
    """
    if not np.isfinite(r) or abs(r) > 1:
        raise DomainError(f"Rank correlation must be in [-1, 1], got {r}")
    return 2 * np.sin(r * np.pi / 6)


def equicorrelation_matrix(rho: float, d: int) -> np.ndarray:
    """Build the d x d Toeplitz matrix with unit diagonal and constant off-diagonal rho."""
    if d < 2:
        raise ShapeError(f"Need at least 2 dimensions for a correlation matrix, got d={d}")
    if not np.isfinite(rho) or abs(rho) > 1:
        raise DomainError(f"Correlation must be in [-1, 1], got {rho}")

    first_row = np.full(d, rho, dtype=float)
    first_row[0] = 1.0
    return toeplitz(first_row)


def correlation_factor(corr: np.ndarray) -> np.ndarray:
    """
    Factor a correlation matrix P as L @ L.T.

    Returns the lower Cholesky factor when P is positive definite. A positive
    semi-definite but singular P (e.g. rho = 1) is factored through its
    eigendecomposition instead.

    Raises
    ------
    NumericalError
        If P is not positive semi-definite.
    """
    try:
        return np.linalg.cholesky(corr)
    except np.linalg.LinAlgError:
        eigenvalues, eigenvectors = np.linalg.eigh(corr)

    if eigenvalues.min() < -PSD_TOLERANCE:
        raise NumericalError(
            f"Correlation matrix is not positive semi-definite "
            f"(smallest eigenvalue {eigenvalues.min():.3g})"
        )

    logger.warning("Correlation matrix is singular, factoring through eigendecomposition")
    return eigenvectors * np.sqrt(np.clip(eigenvalues, 0, None))


def generate_correlated_uniforms(r: float, n: int, d: int = 2, rng=None) -> np.ndarray:
    """
    Draw n samples of d equicorrelated Uniform(0, 1) variates via a Gaussian copula.

    Parameters
    ----------
    r : float
        Nominal rank correlation in [-1, 1].
    n : int
        Number of draws (rows).
    d : int, optional
        Number of variates per draw (columns). Defaults to 2.
    rng : np.random.Generator, optional
        Source of standard normal variates. Defaults to an unseeded generator.

    Returns
    -------
    np.ndarray
        Array of shape (n, d) with uniform margins.

    Raises
    ------
    ShapeError
        If n < 1 or d < 2.
    DomainError
        If r lies outside [-1, 1].
    NumericalError
        If the implied correlation matrix is not positive semi-definite.
    """
    if n < 1:
        raise ShapeError(f"Number of draws must be at least 1, got n={n}")

    rho = rank_to_pearson(r)
    corr = equicorrelation_matrix(rho, d)
    factor = correlation_factor(corr)

    if rng is None:
        rng = np.random.default_rng()

    z = rng.standard_normal((n, d))
    x = z @ factor.T

    logger.debug(f"Generated {n} x {d} correlated uniforms at r={r:.3f} (rho={rho:.4f})")

    return norm.cdf(x)


def simulate_two_test_pvalues(n_features: int, n_per_group: int, rng=None) -> np.ndarray:
    """
    Apply a t-test and a Wilcoxon rank-sum test to the same null data.

    Each feature draws two groups of `n_per_group` standard normal values, so
    both tests share their data and yield positively correlated p-values.

    Returns
    -------
    np.ndarray
        P-value matrix of shape (n_features, 2): t-test, then rank-sum.
    """
    if n_features < 1:
        raise ShapeError(f"Number of features must be at least 1, got {n_features}")
    if n_per_group < 2:
        raise ShapeError(f"Need at least 2 samples per group, got {n_per_group}")

    if rng is None:
        rng = np.random.default_rng()

    group_a = rng.standard_normal((n_features, n_per_group))
    group_b = rng.standard_normal((n_features, n_per_group))

    _, t_pvalues = ttest_ind(group_a, group_b, axis=1)
    _, w_pvalues = mannwhitneyu(group_a, group_b, alternative="two-sided", axis=1)

    return np.column_stack([t_pvalues, w_pvalues])
