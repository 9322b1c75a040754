import argparse
import logging
import pathlib
import sys
from datetime import datetime

from dotenv import load_dotenv
from pydantic import ValidationError

load_dotenv()

from src.calibration.config import (  # noqa: E402
    ModelSelectionConfig,
    SimulationConfig,
    load_config,
)
from src.calibration.pipeline import (  # noqa: E402
    run_combination_experiment,
    run_correlation_sweep,
    run_two_test_experiment,
)
from src.calibration.plotting import plot_calibration, pvalues_from_output  # noqa: E402
from src.calibration.report import ReportCollector, generate_markdown_report  # noqa: E402
from src.model_selection.pipeline import simulate_null_model_selection  # noqa: E402


def configure_logging(log_level: str):
    """Configure logging with the specified level."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    return logging.getLogger(__name__)


def build_config(args, config_class=SimulationConfig):
    """Build a configuration from --config and explicit command-line overrides."""
    overrides = {}
    for name in config_class.model_fields:
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value

    try:
        base = load_config(args.config, config_class) if args.config else config_class()
        if not overrides:
            return base
        return config_class.model_validate({**base.model_dump(), **overrides})
    except ValidationError as e:
        raise SystemExit(f"Invalid configuration: {e}")


def _report_paths(args):
    """Resolve the report path and figures directory, or (None, None) without --report."""
    if not args.report:
        return None, None

    if args.report is True:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        report_path = pathlib.Path(f"reports/calibration_report_{timestamp}.md")
    else:
        report_path = pathlib.Path(args.report)

    figures_dir = None
    if args.report_plots:
        figures_dir = report_path.parent / "figures"
        figures_dir.mkdir(parents=True, exist_ok=True)

    return report_path, figures_dir


def _run_experiments(args, logger, experiments):
    """
    Run (experiment_id, label, rank_correlation, runner) tuples and collect results.

    A failing experiment is logged and recorded in the report; the rest still run.
    """
    report_path, figures_dir = _report_paths(args)
    report_collector = ReportCollector() if report_path else None

    plot_enabled = args.plot and len(experiments) == 1
    if args.plot and len(experiments) > 1:
        logger.warning(
            "Interactive plotting is only supported for a single experiment. "
            "Plotting will be disabled."
        )

    for experiment_id, label, rank_correlation, runner in experiments:
        logger.info(f"Running: {label}")
        reports = None
        pvalues_by_method = None
        error_msg = None
        plot_path = None

        try:
            reports, pvalues_by_method = runner()
        except Exception as e:
            error_msg = str(e)
            logger.error(f"Error running {label}: {error_msg}")

        if pvalues_by_method and not error_msg:
            try:
                if figures_dir is not None:
                    plot_path = str(figures_dir / f"experiment_{experiment_id}_plots.png")
                    plot_calibration(pvalues_by_method, save_path=plot_path)
                elif plot_enabled:
                    plot_calibration(pvalues_by_method)
            except Exception as e:
                logger.error(f"Plotting failed: {str(e)}")

        if report_collector:
            report_collector.add_result(
                experiment_id=experiment_id,
                label=label,
                rank_correlation=rank_correlation,
                reports=reports,
                plot_path=plot_path,
                error=error_msg,
            )

    if report_collector:
        generate_markdown_report(report_collector, str(report_path))
        logger.info(f"Report generated: {report_path}")


def _combination_runner(output_fn):
    def runner():
        out = output_fn()
        pvalues_by_method = pvalues_from_output(out)
        reports = {method: out[method]["report"] for method in pvalues_by_method}
        return reports, pvalues_by_method

    return runner


def cmd_combine(args):
    """Combine correlated null p-values at a single rank correlation."""
    logger = configure_logging(args.log_level)
    config = build_config(args)

    experiments = [
        (
            "1",
            f"combine r={config.rank_correlation}",
            config.rank_correlation,
            _combination_runner(lambda: run_combination_experiment(config)),
        )
    ]
    _run_experiments(args, logger, experiments)


def cmd_sweep(args):
    """Combine correlated null p-values over a grid of rank correlations."""
    logger = configure_logging(args.log_level)
    config = build_config(args)

    if args.report or args.plot:
        experiments = []
        for idx, r in enumerate(config.correlation_grid):
            point_config = config.model_copy(update={"rank_correlation": r})
            experiments.append(
                (
                    str(idx + 1),
                    f"combine r={r}",
                    r,
                    _combination_runner(
                        lambda point_config=point_config: run_combination_experiment(point_config)
                    ),
                )
            )
        _run_experiments(args, logger, experiments)
        return

    table = run_correlation_sweep(config)
    wide = table.pivot_table(index=["rank_correlation", "method"], columns="alpha", values="observed")
    print(wide.to_string())


def cmd_two_tests(args):
    """Combine t-test and rank-sum p-values computed on the same null data."""
    logger = configure_logging(args.log_level)
    config = build_config(args)

    experiments = [
        (
            "1",
            f"t-test + rank-sum, {config.n_per_group} per group",
            None,
            _combination_runner(lambda: run_two_test_experiment(config)),
        )
    ]
    _run_experiments(args, logger, experiments)


def cmd_model_selection(args):
    """Check calibration of AIC-selected p-values before and after FDR correction."""
    logger = configure_logging(args.log_level)
    config = build_config(args, ModelSelectionConfig)

    def runner():
        out = simulate_null_model_selection(config)
        reports = {"naive": out["naive"], "corrected": out["corrected"]}
        pvalues_by_method = {
            "naive": out["result"].naive_p_values,
            "corrected": out["result"].corrected_p_values,
        }
        return reports, pvalues_by_method

    experiments = [("1", f"model selection, {config.n_units} units", None, runner)]
    _run_experiments(args, logger, experiments)


def _add_common_arguments(parser):
    parser.add_argument("--seed", type=int, help="Random seed (default: 42)")
    parser.add_argument(
        "--config",
        help="Path to a JSON configuration file. Command-line options override its values.",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Show calibration plots (only works with a single experiment)",
    )
    parser.add_argument(
        "--report",
        nargs="?",
        const=True,
        default=False,
        metavar="PATH",
        help="Generate a Markdown report. Optionally specify output path "
        "(default: reports/calibration_report_<timestamp>.md)",
    )
    parser.add_argument(
        "--report-plots",
        action="store_true",
        help="Include plots in the report (requires --report)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (default: INFO)",
    )


def _add_simulation_arguments(parser):
    parser.add_argument(
        "--n-features", dest="n_features", type=int, help="Number of simulated features"
    )
    parser.add_argument(
        "--n-tests", dest="n_tests", type=int, help="Number of tests combined per feature"
    )
    parser.add_argument(
        "--methods",
        nargs="+",
        choices=["fisher", "stouffer", "minp", "maxp"],
        help="Combination methods (default: all)",
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="P-Value Calibration - check meta-analysis combiners under correlation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Combine command
    combine_parser = subparsers.add_parser(
        "combine", help="Combine correlated null p-values at one rank correlation"
    )
    combine_parser.add_argument(
        "--r",
        dest="rank_correlation",
        type=float,
        help="Rank correlation between tests, in [-1, 1] (default: 0.25)",
    )
    _add_simulation_arguments(combine_parser)
    _add_common_arguments(combine_parser)
    combine_parser.set_defaults(func=cmd_combine)

    # Sweep command
    sweep_parser = subparsers.add_parser(
        "sweep", help="Combine correlated null p-values over a grid of rank correlations"
    )
    sweep_parser.add_argument(
        "--grid",
        dest="correlation_grid",
        type=float,
        nargs="+",
        help="Rank correlations to evaluate (default: 0 0.25 0.5 0.75)",
    )
    _add_simulation_arguments(sweep_parser)
    _add_common_arguments(sweep_parser)
    sweep_parser.set_defaults(func=cmd_sweep)

    # Two-tests command
    two_tests_parser = subparsers.add_parser(
        "two-tests", help="Combine t-test and rank-sum p-values from the same data"
    )
    two_tests_parser.add_argument(
        "--n-per-group", dest="n_per_group", type=int, help="Samples per group (default: 20)"
    )
    _add_simulation_arguments(two_tests_parser)
    _add_common_arguments(two_tests_parser)
    two_tests_parser.set_defaults(func=cmd_two_tests)

    # Model selection command
    model_parser = subparsers.add_parser(
        "model-selection", help="Check FDR correction of AIC-selected model p-values"
    )
    model_parser.add_argument("--n-units", dest="n_units", type=int, help="Number of units")
    model_parser.add_argument(
        "--n-samples", dest="n_samples", type=int, help="Samples per unit (default: 30)"
    )
    _add_common_arguments(model_parser)
    model_parser.set_defaults(func=cmd_model_selection)

    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.command is None:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
