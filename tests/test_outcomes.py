"""
Tests for outcome formatting and flattening.
"""
import pytest

from fishermc import (
    ChiSquareResult,
    ChiSquareWithFisherSupplement,
    ExactFisherResult,
    MonteCarloFisherResult,
    format_outcome,
)
from fishermc.outcomes import significance_marker


class TestFormatOutcome:
    """Test the text report of each outcome type."""

    def test_exact_fisher(self):
        outcome = ExactFisherResult(statistic=9.0, p_value=0.48571428, alternative='two-sided')
        assert format_outcome(outcome) == "Fisher's Exact Test (two-sided): p-value = 0.4857"

    def test_monte_carlo_fisher(self):
        outcome = MonteCarloFisherResult(p_value=0.0123, alternative='greater', n_simulations=1000)
        assert format_outcome(outcome) == "Fisher's Exact Test (Monte Carlo, greater): p-value = 0.0123"

    def test_chi_square(self):
        outcome = ChiSquareResult(statistic=12.3456, dof=4, p_value=0.01496)
        text = format_outcome(outcome)

        assert text.startswith("Chi-square test results (two-sided):")
        assert "χ² = 12.35, df = 4" in text
        assert "p-value = 0.015" in text

    def test_chi_square_with_monte_carlo_supplement(self):
        outcome = ChiSquareWithFisherSupplement(
            chi_square=ChiSquareResult(statistic=20.0, dof=4, p_value=0.0005),
            fisher=MonteCarloFisherResult(p_value=0.002, alternative='two-sided', n_simulations=500),
        )
        lines = format_outcome(outcome).splitlines()

        assert lines == [
            "Chi-square test: χ² = 20.00, df = 4",
            "Asymptotic p-value (two-sided): 0.0005",
            "Monte Carlo p-value (two-sided): 0.002",
        ]

    def test_chi_square_with_exact_supplement(self):
        outcome = ChiSquareWithFisherSupplement(
            chi_square=ChiSquareResult(statistic=8.5, dof=1, p_value=0.0035),
            fisher=ExactFisherResult(statistic=80.0, p_value=0.0012, alternative='less'),
        )
        assert format_outcome(outcome).splitlines()[-1] == "Fisher's Exact p-value (less): 0.0012"

    def test_unknown_outcome(self):
        with pytest.raises(TypeError):
            format_outcome("not an outcome")


class TestToDict:
    """Test flattening into result rows."""

    def test_chi_square_row(self):
        row = ChiSquareResult(statistic=3.0, dof=2, p_value=0.2).to_dict()
        assert row['method'] == 'chi_square'
        assert row['dof'] == 2
        assert row['n_simulations'] is None

    def test_supplement_row(self):
        row = ChiSquareWithFisherSupplement(
            chi_square=ChiSquareResult(statistic=3.0, dof=2, p_value=0.2),
            fisher=MonteCarloFisherResult(p_value=0.3, alternative='two-sided', n_simulations=100),
        ).to_dict()

        assert row['method'] == 'chi_square_with_fisher'
        assert row['pvalue'] == 0.2
        assert row['fisher_method'] == 'fisher_monte_carlo'
        assert row['fisher_pvalue'] == 0.3
        assert row['n_simulations'] == 100


class TestSignificanceMarker:
    @pytest.mark.parametrize("p_value, marker", [
        (0.0001, " ***"),
        (0.005, " **"),
        (0.03, " *"),
        (0.2, ""),
        (None, ""),
        (float('nan'), ""),
    ])
    def test_markers(self, p_value, marker):
        assert significance_marker(p_value) == marker
