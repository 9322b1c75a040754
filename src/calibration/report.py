"""
Report generation for calibration experiments.

This module collects the results of several experiments (combination runs at
different correlations, the two-test experiment, model selection) and writes
a consolidated Markdown report.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ExperimentResult:
    """Results from a single calibration experiment."""

    experiment_id: str
    label: str
    rank_correlation: float = None
    rejection_rates: dict = field(default_factory=dict)
    ks_statistics: dict = field(default_factory=dict)
    plot_path: str = None
    error: str = None


class ReportCollector:
    """Collects experiment results for report generation."""

    def __init__(self, tolerance: float = 0.005):
        self.results: list[ExperimentResult] = []
        self.tolerance = tolerance

    def add_result(
        self,
        experiment_id: str,
        label: str,
        rank_correlation: float = None,
        reports: dict = None,
        plot_path: str = None,
        error: str = None,
    ):
        """
        Add the result of an experiment.

        Parameters
        ----------
        experiment_id : str
            Unique identifier for the experiment.
        label : str
            Human-readable description (e.g., "combine r=0.25").
        rank_correlation : float, optional
            Rank correlation used to generate the inputs, if any.
        reports : dict, optional
            {method_name: CalibrationReport}.
        plot_path : str, optional
            Path to saved plot image.
        error : str, optional
            Error message if the experiment failed.
        """
        result = ExperimentResult(
            experiment_id=experiment_id,
            label=label,
            rank_correlation=rank_correlation,
            error=error,
        )

        if reports and not error:
            for method, report in reports.items():
                result.rejection_rates[method] = dict(report.rejection_rates)
                result.ks_statistics[method] = report.ks_statistic
            result.plot_path = plot_path

        self.results.append(result)

    def get_summary_stats(self) -> dict:
        """
        Calculate summary statistics across all experiments.

        Returns
        -------
        dict
            Counts of experiments and of miscalibrated method runs.
        """
        successful = [r for r in self.results if r.error is None]
        method_runs = [rates for r in successful for rates in r.rejection_rates.values()]
        miscalibrated = [
            rates
            for rates in method_runs
            if any(abs(observed - alpha) > self.tolerance for alpha, observed in rates.items())
        ]

        return {
            "total_experiments": len(self.results),
            "successful_experiments": len(successful),
            "failed_experiments": len(self.results) - len(successful),
            "method_runs": len(method_runs),
            "miscalibrated_runs": len(miscalibrated),
            "miscalibrated_rate": len(miscalibrated) / len(method_runs) if method_runs else 0,
        }


def _status(rates: dict, tolerance: float) -> str:
    deviations = [observed - alpha for alpha, observed in rates.items()]
    if all(abs(d) <= tolerance for d in deviations):
        return "Calibrated"
    if max(deviations) > tolerance:
        return "Anti-conservative"
    return "Conservative"


def generate_markdown_report(collector: ReportCollector, output_path: str) -> str:
    """
    Generate a Markdown report from collected experiment results.

    Parameters
    ----------
    collector : ReportCollector
        Collector containing experiment results.
    output_path : str
        Path to save the Markdown report.

    Returns
    -------
    str
        Path to the generated report.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    stats = collector.get_summary_stats()
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    lines = []

    # Header
    lines.append("# P-Value Calibration Report")
    lines.append("")
    lines.append(f"**Generated:** {timestamp}")
    lines.append("")

    # Summary section
    lines.append("## Summary")
    lines.append("")
    lines.append(f"- **Experiments run:** {stats['total_experiments']}")
    lines.append(f"- **Successful experiments:** {stats['successful_experiments']}")
    lines.append(f"- **Failed experiments:** {stats['failed_experiments']}")
    lines.append(
        f"- **Miscalibrated method runs (|deviation| > {collector.tolerance}):** "
        f"{stats['miscalibrated_runs']} of {stats['method_runs']} "
        f"({stats['miscalibrated_rate']:.1%})"
    )
    lines.append("")

    # Detailed results section
    lines.append("## Detailed Results")
    lines.append("")

    for r in collector.results:
        lines.append(f"### Experiment {r.experiment_id}: {r.label}")
        lines.append("")
        if r.rank_correlation is not None:
            lines.append(f"**Rank correlation:** {r.rank_correlation}")
            lines.append("")

        if r.error:
            lines.append(f"**Error:** {r.error}")
            lines.append("")
            continue

        if r.rejection_rates:
            alphas = sorted({alpha for rates in r.rejection_rates.values() for alpha in rates})
            header = " | ".join(f"P(p < {alpha})" for alpha in alphas)
            lines.append(f"| Method | {header} | KS statistic | Status |")
            lines.append("|:-------|" + "---:|" * len(alphas) + ":-------------|:-------|")
            lines.append(
                "| nominal | " + " | ".join(f"{alpha:.4f}" for alpha in alphas) + " | - | - |"
            )
            for method, rates in r.rejection_rates.items():
                observed = " | ".join(
                    f"{rates[alpha]:.4f}" if alpha in rates else "-" for alpha in alphas
                )
                ks = r.ks_statistics.get(method)
                ks_display = f"{ks:.4f}" if ks is not None else "-"
                lines.append(
                    f"| {method} | {observed} | {ks_display} | "
                    f"{_status(rates, collector.tolerance)} |"
                )
            lines.append("")

        # Plot
        if r.plot_path:
            plot_rel_path = Path(r.plot_path).name
            lines.append(
                f'<img src="figures/{plot_rel_path}" alt="Calibration plots for experiment '
                f'{r.experiment_id}" height="200">'
            )
            lines.append("")

    # Write report
    report_content = "\n".join(lines)
    output_path.write_text(report_content)

    logger.info(f"Report generated: {output_path}")
    return str(output_path)
