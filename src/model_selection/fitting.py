import logging
from dataclasses import dataclass

import numpy as np
from scipy.stats import f, false_discovery_control

from src.calibration.errors import DomainError, EmptyInputError, ShapeError

logger = logging.getLogger(__name__)

# Lower bound on the residual sum of squares inside the AIC logarithm
RSS_FLOOR = np.finfo(float).tiny


@dataclass(frozen=True)
class ModelFit:
    """Information criterion and overall F-test p-value of a linear model fit."""

    aic: np.ndarray
    p_value: np.ndarray
    n_predictors: int


def linear_model_fit(y, predictors) -> ModelFit:
    """
    Fit an ordinary least squares model with intercept.

    A single fit returns both the AIC and the p-value of the overall F-test
    against the intercept-only model, so no refit is needed for selection.
    A unit whose response is constant gets a p-value of 1.0, and the residual
    sum of squares is floored at RSS_FLOOR so its AIC stays finite.

    Parameters
    ----------
    y : array-like
        Response of shape (n_samples,) or (n_samples, n_units). Each column is
        fitted against the same design.
    predictors : array-like
        Design matrix of shape (n_samples, p) or (n_samples,), without the
        intercept column.

    Returns
    -------
    ModelFit
        `aic` and `p_value` with shape () for a vector response or
        (n_units,) for a matrix response.

    Raises
    ------
    EmptyInputError
        If there are no samples or no predictors.
    ShapeError
        If y and predictors disagree on the number of samples, or there are
        too few samples to estimate the residual variance.
    """
    y = np.asarray(y, dtype=float)
    x = np.asarray(predictors, dtype=float)
    if x.ndim == 1:
        x = x[:, np.newaxis]

    if y.size == 0 or x.size == 0:
        raise EmptyInputError("Response and predictors must not be empty")
    if x.ndim != 2 or y.ndim not in (1, 2):
        raise ShapeError(f"Unexpected shapes: y {y.shape}, predictors {x.shape}")
    if x.shape[0] != y.shape[0]:
        raise ShapeError(
            f"y has {y.shape[0]} samples but predictors have {x.shape[0]} rows"
        )

    n_samples, n_predictors = x.shape
    df_resid = n_samples - n_predictors - 1
    if df_resid < 1:
        raise ShapeError(
            f"Need more than {n_predictors + 1} samples to fit {n_predictors} predictor(s), "
            f"got {n_samples}"
        )

    design = np.column_stack([np.ones(n_samples), x])
    coefficients, _, _, _ = np.linalg.lstsq(design, y, rcond=None)
    residuals = y - design @ coefficients

    rss = np.sum(residuals**2, axis=0)
    tss = np.sum((y - y.mean(axis=0)) ** 2, axis=0)
    constant = np.ptp(y, axis=0) == 0

    if np.any(constant):
        logger.warning(
            f"Constant response for unit(s) {np.flatnonzero(constant).tolist()}: "
            f"setting F-test p-value to 1.0"
        )

    with np.errstate(divide="ignore", invalid="ignore"):
        f_statistic = ((tss - rss) / n_predictors) / (rss / df_resid)
        # Gaussian log-likelihood; the variance counts as a parameter
        aic = (
            n_samples * np.log(np.maximum(rss, RSS_FLOOR) / n_samples)
            + n_samples * (1 + np.log(2 * np.pi))
            + 2 * (n_predictors + 2)
        )

    # A constant response has nothing to explain
    p_value = np.where(constant, 1.0, f.sf(f_statistic, n_predictors, df_resid))
    if y.ndim == 1:
        p_value = p_value[()]

    return ModelFit(aic=aic, p_value=p_value, n_predictors=n_predictors)


def fdr_adjust(pvalues, axis: int = -1) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values.

    Order preserving and of the same shape as the input. For 2-D input each
    slice along `axis` (by default each row) is adjusted independently.

    Raises
    ------
    EmptyInputError
        If there are no p-values.
    DomainError
        If a p-value is NaN or lies outside [0, 1].
    """
    values = np.asarray(pvalues, dtype=float)
    if values.size == 0:
        raise EmptyInputError("p-values must not be empty")
    if np.isnan(values).any() or (values < 0).any() or (values > 1).any():
        raise DomainError("p-values must be between 0 and 1")

    return false_discovery_control(values, axis=axis, method="bh")
