"""
Independence tests for contingency tables.

Picks between:
1. Fisher's exact test for small 2x2 tables
2. Monte Carlo Fisher's test for small or sparse tables beyond 2x2
3. Chi-squared test for large tables, with a Fisher supplement when sparse
"""

from fishermc.contingency_analysis import (
    analyse_contingency,
    analyse_matrix,
    calculate_chi_statistic,
    chi_square_test,
    expected_frequencies,
    fisher_exact_2x2,
    monte_carlo_fisher,
    odds_ratio,
    simulate_contingency_table,
)
from fishermc.exceptions import (
    ContingencyAnalysisError,
    EmptyTableError,
    ExactTestError,
    ExactTestFallbackWarning,
    InvalidArgumentError,
    OneSidedAlternativeWarning,
    SimulationLimitError,
)
from fishermc.outcomes import (
    AnalysisSummary,
    ChiSquareResult,
    ChiSquareWithFisherSupplement,
    ExactFisherResult,
    MonteCarloFisherResult,
    format_outcome,
)

__all__ = [
    "analyse_contingency",
    "analyse_matrix",
    "calculate_chi_statistic",
    "chi_square_test",
    "expected_frequencies",
    "fisher_exact_2x2",
    "monte_carlo_fisher",
    "odds_ratio",
    "simulate_contingency_table",
    "AnalysisSummary",
    "ChiSquareResult",
    "ChiSquareWithFisherSupplement",
    "ExactFisherResult",
    "MonteCarloFisherResult",
    "format_outcome",
    "ContingencyAnalysisError",
    "EmptyTableError",
    "ExactTestError",
    "ExactTestFallbackWarning",
    "InvalidArgumentError",
    "OneSidedAlternativeWarning",
    "SimulationLimitError",
]
