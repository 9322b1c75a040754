"""Run configuration for calibration and model-selection experiments."""

import os
import pathlib

from pydantic import BaseModel, ConfigDict, Field

from src.calibration.combiners import (
    DEFAULT_FISHER_EPSILON,
    DEFAULT_STOUFFER_EPSILON,
    MethodKind,
)
from src.calibration.evaluator import DEFAULT_THRESHOLDS

# Defaults (can be overridden via environment variables)
DEFAULT_SEED = int(os.getenv("PVAL_CALIBRATION_SEED", "42"))
DEFAULT_N_FEATURES = int(os.getenv("PVAL_CALIBRATION_N_FEATURES", "5000"))
DEFAULT_N_UNITS = int(os.getenv("PVAL_CALIBRATION_N_UNITS", "2000"))


class SimulationConfig(BaseModel):
    """Configuration of the correlated-uniform combination experiments."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    seed: int | None = DEFAULT_SEED
    n_features: int = Field(default=DEFAULT_N_FEATURES, ge=1)
    n_tests: int = Field(default=2, ge=2)
    rank_correlation: float = Field(default=0.25, ge=-1, le=1)
    methods: tuple[MethodKind, ...] = Field(default=tuple(MethodKind), min_length=1)
    thresholds: tuple[float, ...] = Field(default=DEFAULT_THRESHOLDS, min_length=1)
    fisher_epsilon: float = Field(default=DEFAULT_FISHER_EPSILON, gt=0, lt=1)
    stouffer_epsilon: float = Field(default=DEFAULT_STOUFFER_EPSILON, gt=0, lt=0.5)
    correlation_grid: tuple[float, ...] = (0.0, 0.25, 0.5, 0.75)
    n_per_group: int = Field(default=20, ge=2)


class ModelSelectionConfig(BaseModel):
    """Configuration of the null model-selection experiment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    seed: int | None = DEFAULT_SEED
    n_units: int = Field(default=DEFAULT_N_UNITS, ge=1)
    n_samples: int = Field(default=30, ge=5)
    thresholds: tuple[float, ...] = Field(default=DEFAULT_THRESHOLDS, min_length=1)


def get_default_config() -> SimulationConfig:
    """
    Get the default simulation configuration.

    The seed and number of features can be overridden via the
    PVAL_CALIBRATION_SEED and PVAL_CALIBRATION_N_FEATURES environment variables.
    """
    return SimulationConfig()


def load_config(path, config_class=SimulationConfig):
    """
    Load a configuration from a JSON file.

    Parameters
    ----------
    path : str or pathlib.Path
        Path to a JSON document with the configuration fields.
    config_class : type, optional
        SimulationConfig (default) or ModelSelectionConfig.

    Raises
    ------
    pydantic.ValidationError
        If the document contains unknown or out-of-range fields.
    """
    text = pathlib.Path(path).read_text()
    return config_class.model_validate_json(text)
