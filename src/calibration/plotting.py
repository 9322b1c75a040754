import logging

import matplotlib.pyplot as plt
import numpy as np

from src.calibration.evaluator import empirical_cdf

logger = logging.getLogger(__name__)


def _plot_ecdf(ax, pvalues_by_method):
    """
    Plot the empirical CDF of each method against the identity line.

    Parameters
    ----------
    ax : matplotlib.axes.Axes
        Axes object to plot on.
    pvalues_by_method : dict
        {method_name: p-value vector}
    """
    for method, pvalues in pvalues_by_method.items():
        ecdf = empirical_cdf(pvalues)
        ax.step(ecdf[:, 0], ecdf[:, 1], where="post", linewidth=1.5, label=method)
    ax.plot([0, 1], [0, 1], "k--", linewidth=1, label="Uniform(0, 1)")
    ax.set_xlabel("p-value")
    ax.set_ylabel("Empirical CDF")
    ax.set_title("Calibration of combined p-values")
    ax.grid(True, alpha=0.3)
    ax.legend()


def _plot_pvalue_histogram(ax, pvalues, method):
    """
    Plot a density histogram of p-values with the uniform density overlay.

    Parameters
    ----------
    ax : matplotlib.axes.Axes
        Axes object to plot on.
    pvalues : array-like
        P-values to visualize.
    method : str
        Method name used in the title.
    """
    ax.hist(pvalues, bins=20, range=(0, 1), density=True, alpha=0.6, edgecolor="black")
    ax.axhline(1.0, color="r", linewidth=2, label="Uniform(0, 1)")
    ax.set_xlabel("p-value")
    ax.set_ylabel("Density")
    ax.set_title(method)
    ax.legend()


def plot_calibration(pvalues_by_method: dict, save_path: str = None):
    """
    Plot calibration diagnostics for combined p-values.

    Draws one ECDF panel with every method and one histogram per method.

    Parameters
    ----------
    pvalues_by_method : dict
        {method_name: p-value vector}, e.g. built from the output of
        run_combination_experiment.
    save_path : str, optional
        Path to save the plot image. If None, displays the plot interactively.

    Raises
    ------
    RuntimeError
        If there are no p-values to plot.
    """
    pvalues_by_method = {
        method: np.asarray(pvalues)
        for method, pvalues in pvalues_by_method.items()
        if pvalues is not None and len(pvalues) > 0
    }

    if len(pvalues_by_method) == 0:
        raise RuntimeError("No p-values to plot")

    num_plots = 1 + len(pvalues_by_method)
    fig, axes = plt.subplots(1, num_plots, figsize=(5 * num_plots, 5))

    _plot_ecdf(axes[0], pvalues_by_method)
    for ax, (method, pvalues) in zip(axes[1:], pvalues_by_method.items()):
        _plot_pvalue_histogram(ax, pvalues, method)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches="tight")
        plt.close(fig)
        logger.info(f"Plot saved to {save_path}")
    else:
        plt.show()


def pvalues_from_output(test_output: dict) -> dict:
    """Extract {method_name: combined p-values} from an experiment output dict."""
    return {
        key: value["p_values"]
        for key, value in test_output.items()
        if isinstance(value, dict) and "p_values" in value
    }
