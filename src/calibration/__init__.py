"""Calibration checks for meta-analysis p-value combiners under correlation."""

from src.calibration.combiners import MethodKind, combine
from src.calibration.config import ModelSelectionConfig, SimulationConfig, load_config
from src.calibration.errors import (
    CalibrationError,
    DomainError,
    EmptyInputError,
    NumericalError,
    ShapeError,
)
from src.calibration.evaluator import (
    CalibrationReport,
    calibration_table,
    empirical_cdf,
    evaluate,
    max_ecdf_deviation,
)
from src.calibration.generator import (
    generate_correlated_uniforms,
    rank_to_pearson,
    simulate_two_test_pvalues,
)
from src.calibration.pipeline import (
    run_combination_experiment,
    run_correlation_sweep,
    run_two_test_experiment,
)
from src.calibration.report import ReportCollector, generate_markdown_report

__all__ = [
    # Experiments
    "run_combination_experiment",
    "run_correlation_sweep",
    "run_two_test_experiment",
    # Generation
    "generate_correlated_uniforms",
    "rank_to_pearson",
    "simulate_two_test_pvalues",
    # Combination
    "MethodKind",
    "combine",
    # Evaluation
    "CalibrationReport",
    "calibration_table",
    "empirical_cdf",
    "evaluate",
    "max_ecdf_deviation",
    # Configuration
    "ModelSelectionConfig",
    "SimulationConfig",
    "load_config",
    # Errors
    "CalibrationError",
    "DomainError",
    "EmptyInputError",
    "NumericalError",
    "ShapeError",
    # Report generation
    "ReportCollector",
    "generate_markdown_report",
]
