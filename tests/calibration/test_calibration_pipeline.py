"""Integration tests: calibration of combined p-values under the null.

Under independence (r = 0) every combiner must produce uniform p-values. Under
positive correlation the independence-assuming combiners drift away from the
nominal rejection rates; these tests pin down the direction of the drift.
"""

import numpy as np
import pandas as pd
import pytest

from src.calibration.combiners import MethodKind
from src.calibration.config import SimulationConfig
from src.calibration.pipeline import (
    combine_and_evaluate,
    run_combination_experiment,
    run_correlation_sweep,
    run_two_test_experiment,
)

# ─────────────────────────────────────────────────────────────────────────────
# Test configuration
# ─────────────────────────────────────────────────────────────────────────────

RANDOM_SEED = 42
THRESHOLDS = (0.01, 0.05, 0.1)
MIN_DEVIATION = 0.005


class TestCombinationExperimentOutput:
    """Structure of the experiment output."""

    def test_output_keys_and_table(self):
        config = SimulationConfig(seed=RANDOM_SEED, n_features=5000, rank_correlation=0.25)
        out = run_combination_experiment(config)

        for method in MethodKind:
            assert method.value in out
            assert out[method.value]["p_values"].shape == (5000,)
            assert set(out[method.value]["report"].rejection_rates) == set(THRESHOLDS)

        table = out["table"]
        assert isinstance(table, pd.DataFrame)
        assert list(table.index) == ["nominal", "fisher", "stouffer", "minp", "maxp"]

    def test_reproducible_given_seed(self):
        config = SimulationConfig(seed=RANDOM_SEED, n_features=500)
        a = run_combination_experiment(config)
        b = run_combination_experiment(config)
        np.testing.assert_array_equal(a["fisher"]["p_values"], b["fisher"]["p_values"])

    def test_method_subset(self):
        config = SimulationConfig(seed=RANDOM_SEED, n_features=200, methods=("fisher",))
        out = run_combination_experiment(config)
        assert "fisher" in out
        assert "minp" not in out

    def test_combine_and_evaluate_on_given_matrix(self):
        config = SimulationConfig(methods=("maxp",), thresholds=(0.25,))
        out = combine_and_evaluate([[0.5, 0.5], [0.9, 0.9]], config)
        np.testing.assert_allclose(out["maxp"]["p_values"], [0.25, 0.81])
        assert out["maxp"]["report"].rejection_rates == {0.25: 0.0}


@pytest.mark.integration_statistical_analysis
class TestCalibrationUnderIndependence:
    """At r = 0 all combiners are calibrated."""

    @pytest.mark.parametrize("method", list(MethodKind))
    def test_ecdf_matches_identity_line(self, method):
        config = SimulationConfig(
            seed=RANDOM_SEED, n_features=100_000, rank_correlation=0.0, methods=(method,)
        )
        out = run_combination_experiment(config)
        report = out[method.value]["report"]

        assert report.ks_statistic < 0.01
        for alpha, observed in report.rejection_rates.items():
            assert observed == pytest.approx(alpha, abs=0.004)


@pytest.mark.integration_statistical_analysis
class TestMiscalibrationUnderCorrelation:
    """Positively correlated tests break the independence assumption."""

    @pytest.mark.parametrize("method", [MethodKind.FISHER, MethodKind.STOUFFER, MethodKind.MAXP])
    def test_anti_conservative_at_moderate_correlation(self, method):
        config = SimulationConfig(
            seed=RANDOM_SEED, n_features=20_000, rank_correlation=0.25, methods=(method,)
        )
        report = run_combination_experiment(config)[method.value]["report"]

        for alpha in (0.05, 0.1):
            assert report.rejection_rates[alpha] > alpha + MIN_DEVIATION, (
                f"{method.value} rejection rate {report.rejection_rates[alpha]:.4f} "
                f"not above {alpha} + {MIN_DEVIATION}"
            )

    def test_minp_conservative_at_strong_correlation(self):
        config = SimulationConfig(
            seed=RANDOM_SEED, n_features=20_000, rank_correlation=0.75, methods=("minp",)
        )
        report = run_combination_experiment(config)["minp"]["report"]

        assert report.rejection_rates[0.1] < 0.1 - MIN_DEVIATION
        assert report.direction(MIN_DEVIATION)[0.1] == "conservative"

    def test_end_to_end_table_at_quarter_correlation(self):
        config = SimulationConfig(seed=RANDOM_SEED, n_features=5000, rank_correlation=0.25)
        table = run_combination_experiment(config)["table"]

        deviation = table.drop(index="nominal") - table.loc["nominal"]
        # Stouffer and maxP drift by about 0.02 at alpha = 0.05
        assert deviation.loc["stouffer", 0.05] > MIN_DEVIATION
        assert deviation.loc["maxp", 0.05] > MIN_DEVIATION
        # minP errs on the conservative side, well below Stouffer
        assert deviation.loc["minp", 0.1] < deviation.loc["stouffer", 0.1] - 0.01


@pytest.mark.integration_statistical_analysis
class TestCorrelationSweep:
    """Stouffer miscalibration grows with the correlation."""

    def test_sweep_table(self):
        config = SimulationConfig(
            seed=RANDOM_SEED,
            n_features=20_000,
            methods=("stouffer",),
            correlation_grid=(0.0, 0.5, 0.9),
        )
        table = run_correlation_sweep(config)

        assert set(table.columns) == {
            "rank_correlation",
            "method",
            "alpha",
            "observed",
            "deviation",
        }
        assert len(table) == 3 * len(THRESHOLDS)

        at_05 = table[table["alpha"] == 0.05].set_index("rank_correlation")["deviation"]
        assert at_05.loc[0.0] < at_05.loc[0.5] < at_05.loc[0.9]


@pytest.mark.integration_statistical_analysis
class TestTwoTestExperiment:
    """t-test and rank-sum p-values from the same data are not independent."""

    def test_combined_pvalues_miscalibrated(self):
        config = SimulationConfig(seed=RANDOM_SEED, n_features=10_000, n_per_group=20)
        out = run_two_test_experiment(config)

        assert out["test_correlation"] > 0.8
        assert out["stouffer"]["report"].rejection_rates[0.05] > 0.05 + MIN_DEVIATION
        assert out["minp"]["report"].rejection_rates[0.05] < 0.05 - MIN_DEVIATION
