"""Tests for config module."""

import pytest
from pydantic import ValidationError

from src.calibration.combiners import MethodKind
from src.calibration.config import (
    ModelSelectionConfig,
    SimulationConfig,
    get_default_config,
    load_config,
)


class TestSimulationConfig:
    """Validation and immutability of SimulationConfig."""

    def test_defaults(self):
        config = get_default_config()
        assert config.n_tests == 2
        assert config.rank_correlation == 0.25
        assert config.methods == tuple(MethodKind)
        assert config.thresholds == (0.01, 0.05, 0.1)
        assert config.fisher_epsilon == 1e-300

    def test_is_frozen(self):
        config = SimulationConfig()
        with pytest.raises(ValidationError):
            config.n_features = 10

    def test_method_names_are_parsed(self):
        config = SimulationConfig(methods=["fisher", "minp"])
        assert config.methods == (MethodKind.FISHER, MethodKind.MINP)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("rank_correlation", 1.5),
            ("n_tests", 1),
            ("n_features", 0),
            ("fisher_epsilon", 0.0),
            ("methods", ["tippett"]),
        ],
    )
    def test_invalid_values_raise(self, field, value):
        with pytest.raises(ValidationError):
            SimulationConfig(**{field: value})

    def test_unknown_field_raises(self):
        with pytest.raises(ValidationError):
            SimulationConfig(n_genes=10)


class TestLoadConfig:
    """Loading configurations from JSON files."""

    def test_load_simulation_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"seed": 7, "n_features": 100, "methods": ["stouffer"]}')

        config = load_config(path)
        assert config.seed == 7
        assert config.n_features == 100
        assert config.methods == (MethodKind.STOUFFER,)

    def test_load_model_selection_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"n_units": 50, "n_samples": 12}')

        config = load_config(path, ModelSelectionConfig)
        assert config.n_units == 50
        assert config.n_samples == 12

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"n_tests": 1}')

        with pytest.raises(ValidationError):
            load_config(path)
