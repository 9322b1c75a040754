"""Unit tests for src.calibration.generator."""

import numpy as np
import pytest
from scipy.stats import norm, spearmanr

from src.calibration.errors import DomainError, NumericalError, ShapeError
from src.calibration.generator import (
    correlation_factor,
    equicorrelation_matrix,
    generate_correlated_uniforms,
    rank_to_pearson,
    simulate_two_test_pvalues,
)

# ─────────────────────────────────────────────────────────────────────────────
# Test configuration
# ─────────────────────────────────────────────────────────────────────────────

N_DRAWS = 20_000
RANDOM_SEED = 42


# ─────────────────────────────────────────────────────────────────────────────
# Tests for the correlation matrix
# ─────────────────────────────────────────────────────────────────────────────


class TestCorrelationMatrix:
    """Rank-to-Pearson conversion and equicorrelation structure."""

    def test_zero_rank_correlation_gives_identity(self):
        rho = rank_to_pearson(0.0)
        assert rho == 0.0
        np.testing.assert_array_equal(equicorrelation_matrix(rho, 3), np.eye(3))

    def test_half_rank_correlation(self):
        assert rank_to_pearson(0.5) == pytest.approx(2 * np.sin(np.pi / 12))
        assert rank_to_pearson(0.5) == pytest.approx(0.5176, abs=1e-4)

    def test_full_rank_correlation_approaches_one(self):
        assert rank_to_pearson(1.0) == pytest.approx(1.0)
        assert rank_to_pearson(0.999) > 0.998

    @pytest.mark.parametrize("r", [-1.5, 1.01, np.nan])
    def test_out_of_range_rank_correlation_raises(self, r):
        with pytest.raises(DomainError, match=r"\[-1, 1\]"):
            rank_to_pearson(r)

    def test_equicorrelation_structure(self):
        corr = equicorrelation_matrix(0.3, 4)
        assert corr.shape == (4, 4)
        np.testing.assert_array_equal(np.diag(corr), np.ones(4))
        off_diagonal = corr[~np.eye(4, dtype=bool)]
        np.testing.assert_allclose(off_diagonal, 0.3)
        np.testing.assert_array_equal(corr, corr.T)

    def test_single_dimension_raises(self):
        with pytest.raises(ShapeError, match="at least 2"):
            equicorrelation_matrix(0.3, 1)

    def test_factor_reproduces_matrix(self):
        corr = equicorrelation_matrix(0.5, 3)
        factor = correlation_factor(corr)
        np.testing.assert_allclose(factor @ factor.T, corr, atol=1e-12)
        np.testing.assert_allclose(factor, np.tril(factor))

    def test_singular_matrix_is_factored(self):
        corr = np.ones((3, 3))
        factor = correlation_factor(corr)
        np.testing.assert_allclose(factor @ factor.T, corr, atol=1e-10)

    def test_non_psd_matrix_raises(self):
        # Three variables cannot be pairwise perfectly anti-correlated
        corr = equicorrelation_matrix(-1.0, 3)
        with pytest.raises(NumericalError, match="positive semi-definite"):
            correlation_factor(corr)

    def test_negative_full_correlation_with_three_tests_raises(self):
        with pytest.raises(NumericalError):
            generate_correlated_uniforms(-1.0, 10, d=3, rng=np.random.default_rng(RANDOM_SEED))


# ─────────────────────────────────────────────────────────────────────────────
# Tests for generate_correlated_uniforms
# ─────────────────────────────────────────────────────────────────────────────


class TestGenerateCorrelatedUniforms:
    """Draws have uniform margins and the requested dependence."""

    def test_shape_and_range(self):
        uniforms = generate_correlated_uniforms(
            0.25, 100, d=3, rng=np.random.default_rng(RANDOM_SEED)
        )
        assert uniforms.shape == (100, 3)
        assert np.all((uniforms >= 0) & (uniforms <= 1))

    def test_deterministic_given_seed(self):
        a = generate_correlated_uniforms(0.5, 50, rng=np.random.default_rng(RANDOM_SEED))
        b = generate_correlated_uniforms(0.5, 50, rng=np.random.default_rng(RANDOM_SEED))
        np.testing.assert_array_equal(a, b)

    @pytest.mark.parametrize("r", [0.0, 0.25, 0.5, 0.75])
    def test_latent_pearson_correlation_matches(self, r):
        uniforms = generate_correlated_uniforms(r, N_DRAWS, rng=np.random.default_rng(RANDOM_SEED))
        latent = norm.ppf(uniforms)
        observed = np.corrcoef(latent, rowvar=False)[0, 1]
        assert observed == pytest.approx(rank_to_pearson(r), abs=0.03)

    @pytest.mark.parametrize("r", [0.25, 0.5])
    def test_spearman_correlation_matches_rank_parameter(self, r):
        uniforms = generate_correlated_uniforms(r, N_DRAWS, rng=np.random.default_rng(RANDOM_SEED))
        observed = spearmanr(uniforms[:, 0], uniforms[:, 1]).statistic
        assert observed == pytest.approx(r, abs=0.03)

    def test_margins_are_uniform(self):
        uniforms = generate_correlated_uniforms(
            0.75, N_DRAWS, rng=np.random.default_rng(RANDOM_SEED)
        )
        for column in range(uniforms.shape[1]):
            assert np.mean(uniforms[:, column] < 0.1) == pytest.approx(0.1, abs=0.01)
            assert np.mean(uniforms[:, column]) == pytest.approx(0.5, abs=0.01)

    def test_full_correlation_gives_identical_columns(self):
        uniforms = generate_correlated_uniforms(1.0, 100, rng=np.random.default_rng(RANDOM_SEED))
        np.testing.assert_allclose(uniforms[:, 0], uniforms[:, 1], atol=1e-6)

    def test_zero_draws_raises(self):
        with pytest.raises(ShapeError, match="at least 1"):
            generate_correlated_uniforms(0.25, 0)

    def test_single_test_raises(self):
        with pytest.raises(ShapeError, match="at least 2"):
            generate_correlated_uniforms(0.25, 10, d=1)


# ─────────────────────────────────────────────────────────────────────────────
# Tests for simulate_two_test_pvalues
# ─────────────────────────────────────────────────────────────────────────────


class TestSimulateTwoTestPvalues:
    """A t-test and a rank-sum test on the same data give correlated p-values."""

    def test_shape_and_range(self):
        pvalues = simulate_two_test_pvalues(200, 15, rng=np.random.default_rng(RANDOM_SEED))
        assert pvalues.shape == (200, 2)
        assert np.all((pvalues >= 0) & (pvalues <= 1))

    def test_pvalues_are_strongly_correlated(self):
        pvalues = simulate_two_test_pvalues(2000, 20, rng=np.random.default_rng(RANDOM_SEED))
        assert np.corrcoef(pvalues, rowvar=False)[0, 1] > 0.8

    def test_too_few_samples_raises(self):
        with pytest.raises(ShapeError, match="at least 2 samples"):
            simulate_two_test_pvalues(10, 1)
