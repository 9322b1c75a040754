import logging

import numpy as np
import pandas as pd

from src.calibration.combiners import MethodKind, combine
from src.calibration.config import SimulationConfig
from src.calibration.evaluator import calibration_table, evaluate
from src.calibration.generator import generate_correlated_uniforms, simulate_two_test_pvalues

logger = logging.getLogger(__name__)


def combine_and_evaluate(pvalue_matrix, config: SimulationConfig) -> dict:
    """
    Combine a p-value matrix with every configured method and evaluate each.

    Parameters
    ----------
    pvalue_matrix : array-like
        P-values of shape (n_features, n_tests) generated under the null.
    config : SimulationConfig
        Supplies the methods, thresholds and clamping constants.

    Returns
    -------
    dict
        Dictionary with keys:
        - "<method>": {"p_values": combined vector, "report": CalibrationReport}
        - "table": pandas DataFrame of rejection rates (methods x thresholds)
    """
    out = {}

    for method in config.methods:
        method = MethodKind(method)
        combined = combine(
            pvalue_matrix,
            method,
            fisher_epsilon=config.fisher_epsilon,
            stouffer_epsilon=config.stouffer_epsilon,
        )
        report = evaluate(combined, config.thresholds)
        out[method.value] = {"p_values": combined, "report": report}

        logger.debug(
            f"{method.value}: rejection rates {report.rejection_rates}, "
            f"KS statistic={report.ks_statistic:.4f}"
        )

    out["table"] = calibration_table(
        {name: result["p_values"] for name, result in out.items()}, config.thresholds
    )
    return out


def run_combination_experiment(config: SimulationConfig = None, rng=None) -> dict:
    """
    Generate correlated null p-values, combine them and check calibration.

    Parameters
    ----------
    config : SimulationConfig, optional
        Experiment configuration. Defaults to SimulationConfig().
    rng : np.random.Generator, optional
        Random source. Defaults to a generator seeded with config.seed.

    Returns
    -------
    dict
        See `combine_and_evaluate`.
    """
    if config is None:
        config = SimulationConfig()
    if rng is None:
        rng = np.random.default_rng(config.seed)

    uniforms = generate_correlated_uniforms(
        config.rank_correlation, config.n_features, d=config.n_tests, rng=rng
    )
    logger.info(
        f"Generated {config.n_features} feature(s) x {config.n_tests} test(s) "
        f"at rank correlation {config.rank_correlation}"
    )

    out = combine_and_evaluate(uniforms, config)
    logger.info(f"Observed rejection rates:\n{out['table'].to_string()}")
    return out


def run_correlation_sweep(config: SimulationConfig = None) -> pd.DataFrame:
    """
    Repeat the combination experiment over `config.correlation_grid`.

    Returns
    -------
    pd.DataFrame
        Long-format table with columns rank_correlation, method, alpha,
        observed and deviation.
    """
    if config is None:
        config = SimulationConfig()

    rng = np.random.default_rng(config.seed)
    records = []

    for r in config.correlation_grid:
        out = run_combination_experiment(
            config.model_copy(update={"rank_correlation": r}), rng=rng
        )
        for method in config.methods:
            report = out[MethodKind(method).value]["report"]
            for alpha, observed in report.rejection_rates.items():
                records.append(
                    {
                        "rank_correlation": r,
                        "method": MethodKind(method).value,
                        "alpha": alpha,
                        "observed": observed,
                        "deviation": observed - alpha,
                    }
                )

    return pd.DataFrame.from_records(records)


def run_two_test_experiment(config: SimulationConfig = None, rng=None) -> dict:
    """
    Combine t-test and rank-sum p-values computed on the same null data.

    Returns
    -------
    dict
        See `combine_and_evaluate`, plus "test_correlation": the Pearson
        correlation between the two tests' p-values.
    """
    if config is None:
        config = SimulationConfig()
    if rng is None:
        rng = np.random.default_rng(config.seed)

    pvalues = simulate_two_test_pvalues(config.n_features, config.n_per_group, rng=rng)
    test_correlation = float(np.corrcoef(pvalues, rowvar=False)[0, 1])
    logger.info(
        f"Simulated {config.n_features} t-test / rank-sum pair(s), "
        f"p-value correlation {test_correlation:.3f}"
    )

    out = combine_and_evaluate(pvalues, config)
    out["test_correlation"] = test_correlation
    logger.info(f"Observed rejection rates:\n{out['table'].to_string()}")
    return out
