"""Multiple-testing correction after AIC-based model selection."""

from src.model_selection.fitting import ModelFit, fdr_adjust, linear_model_fit
from src.model_selection.pipeline import (
    ModelSelectionResult,
    correct_selected_pvalue,
    correct_selected_pvalues,
    run_model_selection_pipeline,
    select_best_model,
    simulate_null_model_selection,
)

__all__ = [
    # Main pipeline
    "run_model_selection_pipeline",
    "simulate_null_model_selection",
    "ModelSelectionResult",
    # Selection and correction
    "select_best_model",
    "correct_selected_pvalue",
    "correct_selected_pvalues",
    # Fitting
    "ModelFit",
    "linear_model_fit",
    "fdr_adjust",
]
