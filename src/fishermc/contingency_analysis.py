"""
Test selection and Monte Carlo Fisher's test for contingency tables.

This module decides, per table, between:
1. Fisher's exact test for small 2x2 tables
2. A Monte Carlo Fisher's test for small tables that are not 2x2
3. The asymptotic chi-square test for large tables, supplemented by a Fisher
   estimate when many expected frequencies are below 5

The Monte Carlo null distribution is sampled by sequential allocation: units
are placed one at a time into cells with probability proportional to the
remaining row and column budgets, so every simulated table has exactly the
observed margins.
"""
import logging
import warnings
from typing import Optional, Sequence, Union

import numpy as np
from numba import njit
from scipy import stats

from fishermc.exceptions import (
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
    FisherResult,
    MonteCarloFisherResult,
    TestOutcome,
)

logger = logging.getLogger(__name__)

DEFAULT_N_SIMULATIONS = 10000

# Test selection thresholds
SMALL_TOTAL = 40
MODERATE_TOTAL = 100
SPARSE_PROPORTION = 0.2
FISHER_EXACT_MAX_CELLS = 2000
MIN_EXPECTED_FREQUENCY = 5

ALTERNATIVES = ('two-sided', 'greater', 'less')
SAMPLERS = ('sequential', 'exact')

ONE_SIDED_WARNING = (
    "One-sided tests are only meaningful for 2x2 tables. Using two-sided test instead."
)

RandomSeed = Optional[Union[int, np.random.Generator]]


def _sequential_allocation(simulated, remaining_rows, remaining_cols, rng, max_sweeps):
    """
    Fill ``simulated`` in place until every row and column budget is spent.

    Returns False if ``max_sweeps`` (when non-negative) full sweeps were not
    enough, True otherwise.
    """
    n_rows, n_cols = simulated.shape
    row_total = remaining_rows.sum()
    col_total = remaining_cols.sum()
    sweeps = 0
    while row_total > 0:
        if max_sweeps >= 0 and sweeps >= max_sweeps:
            return False
        for i in range(n_rows):
            for j in range(n_cols):
                if remaining_rows[i] > 0 and remaining_cols[j] > 0:
                    prob = (remaining_rows[i] * remaining_cols[j]) / (row_total * col_total)
                    if rng.random() < prob:
                        simulated[i, j] += 1
                        remaining_rows[i] -= 1
                        remaining_cols[j] -= 1
                        row_total -= 1
                        col_total -= 1
        sweeps += 1
    return True


_sequential_allocation_numba = njit(_sequential_allocation)


def _normalize_alternative(alternative: str) -> str:
    if alternative == 'two':
        return 'two-sided'
    if alternative not in ALTERNATIVES:
        raise InvalidArgumentError(
            f"alternative must be 'two-sided', 'less', or 'greater', got {alternative!r}"
        )
    return alternative


def _check_n_simulations(n_simulations: int) -> int:
    if isinstance(n_simulations, bool) or int(n_simulations) != n_simulations or n_simulations < 1:
        raise InvalidArgumentError(
            f"n_simulations must be a positive integer, got {n_simulations!r}"
        )
    return int(n_simulations)


def _as_counts(values, ndim: int, name: str) -> np.ndarray:
    """Coerce to an int64 array of non-negative integral counts."""
    try:
        array = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"{name} must contain numeric counts: {exc}") from exc

    if array.ndim != ndim:
        raise InvalidArgumentError(f"{name} must be {ndim}-dimensional, got shape {array.shape}")
    if not np.all(np.isfinite(array)):
        raise InvalidArgumentError(f"{name} cannot contain NaN or infinite values")
    if np.any(array < 0):
        raise InvalidArgumentError(f"{name} cannot contain negative values")
    if np.any(array != np.round(array)):
        raise InvalidArgumentError(f"{name} must contain integer counts")

    return array.astype(np.int64)


def as_contingency_table(table) -> np.ndarray:
    """
    Validate a table and return it as a 2-D int64 array.

    Raises:
    -------
    InvalidArgumentError
        If the table is not 2-D, has no cells, or holds negative, missing or
        non-integer values.
    """
    matrix = _as_counts(table, 2, "Contingency table")
    if matrix.shape[0] < 1 or matrix.shape[1] < 1:
        raise EmptyTableError(f"Contingency table has no cells (shape {matrix.shape})")
    return matrix


def expected_frequencies(table) -> np.ndarray:
    """
    Expected cell counts under independence, given the table's margins.

    Parameters:
    -----------
    table : array-like
        Contingency table with shape (n_rows, n_cols).

    Returns:
    --------
    np.ndarray
        Float array of ``row_sum[i] * col_sum[j] / total``.
    """
    matrix = as_contingency_table(table)
    total = matrix.sum()
    if total == 0:
        raise EmptyTableError("Expected frequencies are undefined for a table with no counts")
    return np.outer(matrix.sum(axis=1), matrix.sum(axis=0)) / total


def _chi_statistic(observed: np.ndarray, expected: np.ndarray) -> float:
    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.sum((observed - expected) ** 2 / expected))


def calculate_chi_statistic(table) -> float:
    """
    Pearson chi-square statistic of a contingency table.

    Computes ``sum((O - E)^2 / E)`` with E from expected_frequencies(). The
    result is NaN when a row or column sums to zero; clean the table with
    analyse_matrix() first.
    """
    matrix = as_contingency_table(table)
    return _chi_statistic(matrix, expected_frequencies(matrix))


def odds_ratio(table) -> float:
    """
    Sample odds ratio ``(a*d)/(b*c)`` of a 2x2 table ``[[a, b], [c, d]]``.

    Division by zero follows IEEE semantics: ``inf`` when only ``b*c`` is
    zero, NaN when both products are zero.
    """
    matrix = np.asarray(table)
    if matrix.shape != (2, 2):
        raise InvalidArgumentError(f"Odds ratio requires a 2x2 table, got shape {matrix.shape}")
    numerator = float(matrix[0, 0]) * float(matrix[1, 1])
    denominator = float(matrix[0, 1]) * float(matrix[1, 0])
    if denominator == 0:
        return np.nan if numerator == 0 else np.inf
    return numerator / denominator


def simulate_contingency_table(
    row_sums: Sequence[int],
    col_sums: Sequence[int],
    random_seed: RandomSeed = None,
    *,
    method: str = 'sequential',
    max_sweeps: Optional[int] = None,
    use_numba: bool = False
) -> np.ndarray:
    """
    Simulate a random table with the given row and column sums.

    With method='sequential' the table is filled by repeated row-major sweeps
    over the grid. Each cell whose row and column both have budget left gets
    one unit with probability ``r_i * c_j / (sum(r) * sum(c))``, recomputed
    from the current budgets after every placement. Sweeps continue until all
    budgets are spent. This terminates with probability 1 but the number of
    sweeps is random and not bounded; pass ``max_sweeps`` to cap it.

    With method='exact' the table is drawn from scipy.stats.random_table,
    i.e. exactly from the multivariate hypergeometric null distribution.

    Parameters:
    -----------
    row_sums : sequence of int
        Target row sums.
    col_sums : sequence of int
        Target column sums; must have the same total as ``row_sums``.
    random_seed : int or np.random.Generator, optional
        Seed or generator for the random draws (default: None = fresh entropy).
    method : str, optional
        'sequential' (default) or 'exact'.
    max_sweeps : int, optional
        Maximum number of full sweeps for the sequential method (default: None
        = unbounded).
    use_numba : bool, optional
        Run the sequential kernel compiled with numba (default: False).

    Returns:
    --------
    np.ndarray
        int64 table of shape (len(row_sums), len(col_sums)).

    Raises:
    -------
    InvalidArgumentError
        If the sums are negative, non-integral or have different totals.
    SimulationLimitError
        If ``max_sweeps`` is reached before all budgets are spent.
    """
    rows = _as_counts(row_sums, 1, "row_sums")
    cols = _as_counts(col_sums, 1, "col_sums")
    if rows.sum() != cols.sum():
        raise InvalidArgumentError(
            f"Row sums total {rows.sum()} but column sums total {cols.sum()}"
        )
    if method not in SAMPLERS:
        raise InvalidArgumentError(f"method must be one of {SAMPLERS}, got {method!r}")

    rng = np.random.default_rng(random_seed)
    simulated = np.zeros((len(rows), len(cols)), dtype=np.int64)
    if rows.sum() == 0:
        return simulated

    if method == 'exact':
        return _random_tables(rows, cols, 1, rng)[0]

    remaining_rows = rows.copy()
    remaining_cols = cols.copy()
    limit = -1 if max_sweeps is None else int(max_sweeps)
    kernel = _sequential_allocation_numba if use_numba else _sequential_allocation
    finished = kernel(simulated, remaining_rows, remaining_cols, rng, limit)
    if not finished:
        raise SimulationLimitError(limit, int(remaining_rows.sum()))
    return simulated


def _random_tables(rows: np.ndarray, cols: np.ndarray, size: int, rng: np.random.Generator) -> np.ndarray:
    """Draw ``size`` tables from the exact fixed-margin null distribution."""
    dist = stats.random_table(rows, cols)
    tables = dist.rvs(size=size, random_state=rng)
    return np.asarray(tables).reshape(size, len(rows), len(cols)).astype(np.int64)


def monte_carlo_fisher(
    table,
    n_simulations: int = DEFAULT_N_SIMULATIONS,
    alternative: str = 'two-sided',
    random_seed: RandomSeed = None,
    *,
    sampler: str = 'sequential',
    use_numba: Optional[bool] = None
) -> float:
    """
    Estimate the Fisher's exact test p-value by simulation.

    Two-sided tests, and any table that is not 2x2, compare the chi-square
    statistic of each simulated table against the observed one and count
    simulations with ``sim >= observed``. One-sided tests on a 2x2 table use
    the odds ratio instead, counting ``sim >= observed`` for 'greater' and
    ``sim <= observed`` for 'less'. Ties count as hits, so the estimate errs
    on the conservative side.

    Parameters:
    -----------
    table : array-like
        Contingency table without zero rows or columns.
    n_simulations : int, optional
        Number of simulated tables (default: 10000).
    alternative : str, optional
        'two-sided' (default), 'greater' or 'less'.
    random_seed : int or np.random.Generator, optional
        Seed or generator for reproducibility (default: None).
    sampler : str, optional
        Null distribution sampler, 'sequential' (default) or 'exact'.
    use_numba : bool, optional
        Whether to use the numba-compiled sequential kernel (default: None =
        yes).

    Returns:
    --------
    float
        Estimated p-value in [0, 1].
    """
    alternative = _normalize_alternative(alternative)
    n_simulations = _check_n_simulations(n_simulations)
    if sampler not in SAMPLERS:
        raise InvalidArgumentError(f"sampler must be one of {SAMPLERS}, got {sampler!r}")
    if use_numba is None:
        use_numba = True

    matrix = as_contingency_table(table)
    row_sums = matrix.sum(axis=1)
    col_sums = matrix.sum(axis=0)
    if matrix.sum() == 0:
        raise EmptyTableError("Cannot simulate from a table with no counts")
    if np.any(row_sums == 0) or np.any(col_sums == 0):
        raise InvalidArgumentError(
            "Table has rows or columns with zero marginals; clean it with analyse_matrix() first"
        )

    rng = np.random.default_rng(random_seed)
    if sampler == 'exact':
        simulated_tables = _random_tables(row_sums, col_sums, n_simulations, rng)
    else:
        simulated_tables = (
            simulate_contingency_table(row_sums, col_sums, rng, use_numba=use_numba)
            for _ in range(n_simulations)
        )

    expected = expected_frequencies(matrix)
    if alternative == 'two-sided' or matrix.shape != (2, 2):
        observed_stat = _chi_statistic(matrix, expected)
        n_extreme = sum(
            _chi_statistic(simulated, expected) >= observed_stat
            for simulated in simulated_tables
        )
    else:
        observed_or = odds_ratio(matrix)
        if alternative == 'greater':
            n_extreme = sum(odds_ratio(simulated) >= observed_or for simulated in simulated_tables)
        else:
            n_extreme = sum(odds_ratio(simulated) <= observed_or for simulated in simulated_tables)

    return n_extreme / n_simulations


def analyse_matrix(table) -> AnalysisSummary:
    """
    Remove zero marginals and measure how sparse the expected frequencies are.

    Parameters:
    -----------
    table : array-like
        Contingency table with shape (n_rows, n_cols).

    Returns:
    --------
    AnalysisSummary
        Cleaned table, proportion of cells with expected frequency below 5,
        grand total and the number of rows and columns removed.

    Raises:
    -------
    EmptyTableError
        If no rows or no columns are left after cleaning.
    """
    matrix = as_contingency_table(table)
    non_zero_rows = matrix.sum(axis=1) > 0
    non_zero_cols = matrix.sum(axis=0) > 0
    removed_rows = int(np.count_nonzero(~non_zero_rows))
    removed_cols = int(np.count_nonzero(~non_zero_cols))

    if removed_rows or removed_cols:
        logger.info(
            "Removed %d rows and %d columns with zero marginals", removed_rows, removed_cols
        )

    cleaned = matrix[np.ix_(non_zero_rows, non_zero_cols)]
    if cleaned.size == 0:
        raise EmptyTableError(
            f"Empty table after cleaning: all {matrix.shape[0]}x{matrix.shape[1]} cells are zero"
        )

    expected = expected_frequencies(cleaned)
    prop_small = float(np.count_nonzero(expected < MIN_EXPECTED_FREQUENCY) / cleaned.size)

    return AnalysisSummary(
        cleaned_table=cleaned,
        prop_small=prop_small,
        total=int(cleaned.sum()),
        removed_rows=removed_rows,
        removed_cols=removed_cols,
    )


def fisher_exact_2x2(table, alternative: str = 'two-sided') -> ExactFisherResult:
    """
    Fisher's exact test on a 2x2 table via scipy.stats.fisher_exact.

    Raises:
    -------
    ExactTestError
        If scipy cannot compute the test or returns a non-finite p-value.
    """
    alternative = _normalize_alternative(alternative)
    matrix = as_contingency_table(table)
    if matrix.shape != (2, 2):
        raise InvalidArgumentError(f"Fisher's exact test requires a 2x2 table, got shape {matrix.shape}")

    try:
        statistic, p_value = stats.fisher_exact(matrix, alternative=alternative)
    except (ValueError, OverflowError, FloatingPointError, MemoryError) as exc:
        raise ExactTestError(f"Fisher's exact test failed: {exc}") from exc

    if not np.isfinite(p_value):
        raise ExactTestError(f"Fisher's exact test returned a non-finite p-value: {p_value}")

    return ExactFisherResult(statistic=float(statistic), p_value=float(p_value), alternative=alternative)


def chi_square_test(table) -> ChiSquareResult:
    """
    Pearson chi-square test of independence (no continuity correction).

    The table must not contain zero rows or columns.
    """
    matrix = as_contingency_table(table)
    chi2_stat, pvalue, dof, _ = stats.chi2_contingency(matrix, correction=False)
    return ChiSquareResult(statistic=float(chi2_stat), dof=int(dof), p_value=float(pvalue))


def _fisher_family_test(
    matrix: np.ndarray,
    n_simulations: int,
    alternative: str,
    rng: np.random.Generator,
    sampler: str,
    use_numba: Optional[bool]
) -> FisherResult:
    """Exact Fisher's test where feasible, Monte Carlo otherwise."""
    if matrix.size <= FISHER_EXACT_MAX_CELLS and matrix.shape == (2, 2):
        try:
            return fisher_exact_2x2(matrix, alternative)
        except ExactTestError as exc:
            warnings.warn(
                f"Failed to perform exact Fisher's test, falling back to Monte Carlo simulation ({exc})",
                ExactTestFallbackWarning,
                stacklevel=3,
            )

    p_value = monte_carlo_fisher(
        matrix, n_simulations, alternative, rng, sampler=sampler, use_numba=use_numba
    )
    return MonteCarloFisherResult(p_value=p_value, alternative=alternative, n_simulations=n_simulations)


def analyse_contingency(
    table,
    n_simulations: int = DEFAULT_N_SIMULATIONS,
    alternative: str = 'two-sided',
    *,
    random_seed: RandomSeed = None,
    sampler: str = 'sequential',
    use_numba: Optional[bool] = None
) -> TestOutcome:
    """
    Run the appropriate independence test for a contingency table.

    Zero rows and columns are removed first. Then:
    - total < 40, or more than 20% of expected frequencies below 5 with
      total < 100: Fisher's exact test for 2x2 tables (falling back to Monte
      Carlo if it fails), Monte Carlo Fisher's test otherwise
    - otherwise: chi-square test, plus a Fisher estimate when more than 20%
      of expected frequencies are below 5

    Parameters:
    -----------
    table : array-like
        Contingency table of non-negative counts.
    n_simulations : int, optional
        Number of Monte Carlo simulations (default: 10000).
    alternative : str, optional
        'two-sided' (default), 'greater' or 'less'. One-sided alternatives
        only apply to 2x2 tables; larger tables warn and use two-sided.
    random_seed : int or np.random.Generator, optional
        Seed or generator for the Monte Carlo simulations (default: None).
    sampler : str, optional
        Monte Carlo sampler, 'sequential' (default) or 'exact'.
    use_numba : bool, optional
        Whether to use the numba-compiled simulator (default: None = yes).

    Returns:
    --------
    TestOutcome
        ExactFisherResult, MonteCarloFisherResult, ChiSquareResult or
        ChiSquareWithFisherSupplement.
    """
    alternative = _normalize_alternative(alternative)
    n_simulations = _check_n_simulations(n_simulations)

    summary = analyse_matrix(table)
    matrix = summary.cleaned_table

    if np.any(matrix < 0):
        raise InvalidArgumentError("Contingency table cannot contain negative values")

    if alternative != 'two-sided' and matrix.shape != (2, 2):
        warnings.warn(ONE_SIDED_WARNING, OneSidedAlternativeWarning, stacklevel=2)
        alternative = 'two-sided'

    rng = np.random.default_rng(random_seed)
    sparse = summary.prop_small > SPARSE_PROPORTION

    if summary.total < SMALL_TOTAL or (sparse and summary.total < MODERATE_TOTAL):
        logger.debug(
            "Using Fisher's test family (total=%d, prop_small=%.3f)", summary.total, summary.prop_small
        )
        return _fisher_family_test(matrix, n_simulations, alternative, rng, sampler, use_numba)

    chi_result = chi_square_test(matrix)
    if sparse:
        logger.debug(
            "Using chi-square test with Fisher supplement (total=%d, prop_small=%.3f)",
            summary.total, summary.prop_small,
        )
        fisher_result = _fisher_family_test(matrix, n_simulations, alternative, rng, sampler, use_numba)
        return ChiSquareWithFisherSupplement(chi_square=chi_result, fisher=fisher_result)

    logger.debug("Using chi-square test (total=%d)", summary.total)
    return chi_result
