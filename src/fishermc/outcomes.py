"""
Result types returned by the contingency table analysis.

analyse_contingency() returns exactly one of the TestOutcome variants below.
Each variant carries a ``method`` label that matches the ``method`` column of
the batch results, and format_outcome() renders any of them as the text the
command line tool prints.
"""
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional, Union

import numpy as np


@dataclass(frozen=True, eq=False)
class AnalysisSummary:
    """
    Cleaned table and the characteristics used to pick a test.

    Attributes:
    -----------
    cleaned_table : np.ndarray
        Input table with all-zero rows and columns removed.
    prop_small : float
        Proportion of cells whose expected frequency is below 5.
    total : int
        Grand total of the cleaned table.
    removed_rows, removed_cols : int
        Number of zero-marginal rows and columns that were dropped.
    """
    cleaned_table: np.ndarray
    prop_small: float
    total: int
    removed_rows: int = 0
    removed_cols: int = 0

    @property
    def was_cleaned(self) -> bool:
        return self.removed_rows > 0 or self.removed_cols > 0


@dataclass(frozen=True)
class ExactFisherResult:
    """Fisher's exact test on a 2x2 table."""
    statistic: float
    p_value: float
    alternative: str
    method: ClassVar[str] = 'fisher_exact'

    def to_dict(self) -> Dict:
        return {
            'method': self.method,
            'statistic': self.statistic,
            'dof': None,
            'pvalue': self.p_value,
            'alternative': self.alternative,
            'n_simulations': None,
        }


@dataclass(frozen=True)
class MonteCarloFisherResult:
    """Monte Carlo estimate of the Fisher's exact test p-value."""
    p_value: float
    alternative: str
    n_simulations: int
    method: ClassVar[str] = 'fisher_monte_carlo'

    def to_dict(self) -> Dict:
        return {
            'method': self.method,
            'statistic': None,
            'dof': None,
            'pvalue': self.p_value,
            'alternative': self.alternative,
            'n_simulations': self.n_simulations,
        }


@dataclass(frozen=True)
class ChiSquareResult:
    """Asymptotic chi-square test of independence (always two-sided)."""
    statistic: float
    dof: int
    p_value: float
    alternative: str = field(default='two-sided', init=False)
    method: ClassVar[str] = 'chi_square'

    def to_dict(self) -> Dict:
        return {
            'method': self.method,
            'statistic': self.statistic,
            'dof': self.dof,
            'pvalue': self.p_value,
            'alternative': self.alternative,
            'n_simulations': None,
        }


FisherResult = Union[ExactFisherResult, MonteCarloFisherResult]


@dataclass(frozen=True)
class ChiSquareWithFisherSupplement:
    """
    Chi-square result reported alongside a Fisher estimate.

    Used when the total count is large enough for the asymptotic test but
    too many expected frequencies are small to trust it on its own.
    """
    chi_square: ChiSquareResult
    fisher: FisherResult
    method: ClassVar[str] = 'chi_square_with_fisher'

    @property
    def p_value(self) -> float:
        return self.chi_square.p_value

    def to_dict(self) -> Dict:
        result = self.chi_square.to_dict()
        result['method'] = self.method
        result['fisher_method'] = self.fisher.method
        result['fisher_pvalue'] = self.fisher.p_value
        result['alternative'] = self.fisher.alternative
        result['n_simulations'] = getattr(self.fisher, 'n_simulations', None)
        return result


TestOutcome = Union[
    ExactFisherResult,
    MonteCarloFisherResult,
    ChiSquareResult,
    ChiSquareWithFisherSupplement,
]


def _format_pvalue(p_value: float) -> str:
    return f"{round(p_value, 4)}"


def _format_fisher_line(result: FisherResult, supplementary: bool = False) -> str:
    if isinstance(result, ExactFisherResult):
        label = "Fisher's Exact p-value" if supplementary else "Fisher's Exact Test"
        sided = f"({result.alternative})"
    else:
        label = "Monte Carlo p-value" if supplementary else "Fisher's Exact Test"
        sided = f"({result.alternative})" if supplementary else f"(Monte Carlo, {result.alternative})"

    if supplementary:
        return f"{label} {sided}: {_format_pvalue(result.p_value)}"
    return f"{label} {sided}: p-value = {_format_pvalue(result.p_value)}"


def format_outcome(outcome: TestOutcome) -> str:
    """
    Render a test outcome as human-readable text.

    Parameters:
    -----------
    outcome : TestOutcome
        Result returned by analyse_contingency().

    Returns:
    --------
    str
        One or more lines describing the test that was run and its p-value.
    """
    if isinstance(outcome, (ExactFisherResult, MonteCarloFisherResult)):
        return _format_fisher_line(outcome)

    if isinstance(outcome, ChiSquareWithFisherSupplement):
        chi = outcome.chi_square
        return "\n".join([
            f"Chi-square test: χ² = {chi.statistic:.2f}, df = {chi.dof}",
            f"Asymptotic p-value (two-sided): {_format_pvalue(chi.p_value)}",
            _format_fisher_line(outcome.fisher, supplementary=True),
        ])

    if isinstance(outcome, ChiSquareResult):
        return "\n".join([
            "Chi-square test results (two-sided):",
            f"χ² = {outcome.statistic:.2f}, df = {outcome.dof}, "
            f"p-value = {_format_pvalue(outcome.p_value)}",
        ])

    raise TypeError(f"Unknown test outcome: {type(outcome).__name__}")


def significance_marker(p_value: Optional[float]) -> str:
    """Star marker for a p-value, empty when not significant or missing."""
    if p_value is None or np.isnan(p_value):
        return ""
    return " ***" if p_value < 0.001 else " **" if p_value < 0.01 else " *" if p_value < 0.05 else ""
