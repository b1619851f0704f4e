"""
Example usage of the contingency table analysis.

This script walks through a few classic tables, showing which test gets
selected and how to run the building blocks by hand.
"""

import numpy as np

from fishermc import (
    analyse_contingency,
    analyse_matrix,
    calculate_chi_statistic,
    format_outcome,
    monte_carlo_fisher,
    simulate_contingency_table,
)


def example_1_tea_tasting():
    """Example 1: Lady tasting tea, a small 2x2 table (exact Fisher)."""
    print("=" * 80)
    print("Example 1: Tea Tasting")
    print("=" * 80)

    # Rows: milk poured first / tea poured first; columns: guessed milk / tea
    tea_matrix = np.array([[3, 1], [1, 3]])
    print(format_outcome(analyse_contingency(tea_matrix)))

    # She claimed to be right more often than chance, a one-sided question
    print(format_outcome(analyse_contingency(tea_matrix, alternative='greater')))


def example_2_twin_convictions():
    """Example 2: Criminal convictions of like-sex twins."""
    print("\n\n" + "=" * 80)
    print("Example 2: Twin Convictions")
    print("=" * 80)

    convictions = np.array([[2, 10], [15, 3]])
    print(format_outcome(analyse_contingency(convictions)))


def example_3_job_satisfaction():
    """Example 3: Job satisfaction by income, sparse 4x4 table."""
    print("\n\n" + "=" * 80)
    print("Example 3: Job Satisfaction by Income")
    print("=" * 80)

    job_matrix = np.array([
        [1, 2, 1, 0],
        [3, 3, 6, 1],
        [10, 10, 14, 9],
        [6, 7, 12, 11],
    ])
    summary = analyse_matrix(job_matrix)
    print(f"Total count: {summary.total}")
    print(f"Cells with expected frequency < 5: {summary.prop_small:.1%}")
    print(format_outcome(analyse_contingency(job_matrix, random_seed=42)))


def example_4_mehta_patel():
    """Example 4: Mehta & Patel 5x7 table, Monte Carlo Fisher."""
    print("\n\n" + "=" * 80)
    print("Example 4: Mehta & Patel")
    print("=" * 80)

    mp6_matrix = np.array([
        [1, 2, 2, 1, 1, 0, 1],
        [2, 0, 0, 2, 3, 0, 0],
        [0, 1, 1, 1, 2, 7, 3],
        [1, 1, 2, 0, 0, 0, 1],
        [0, 1, 1, 1, 1, 0, 0],
    ])
    print(format_outcome(analyse_contingency(mp6_matrix, random_seed=42)))

    # Same estimate, sampling the null distribution exactly instead
    outcome = analyse_contingency(mp6_matrix, random_seed=42, sampler='exact')
    print(f"With the exact sampler: p-value = {outcome.p_value:.4f}")


def example_5_manual_analysis():
    """Example 5: Step-by-step analysis of a table with a zero column."""
    print("\n\n" + "=" * 80)
    print("Example 5: Manual Step-by-Step Analysis")
    print("=" * 80)

    table = np.array([
        [12, 0, 5, 3],
        [4, 0, 9, 8],
        [2, 0, 3, 11],
    ])

    summary = analyse_matrix(table)
    print(f"Removed {summary.removed_rows} rows and {summary.removed_cols} columns")
    print("Cleaned table:")
    print(summary.cleaned_table)

    cleaned = summary.cleaned_table
    print(f"\nObserved chi-square statistic: {calculate_chi_statistic(cleaned):.4f}")

    rng = np.random.default_rng(42)
    simulated = simulate_contingency_table(cleaned.sum(axis=1), cleaned.sum(axis=0), rng)
    print("One table simulated under independence (same margins):")
    print(simulated)

    p_value = monte_carlo_fisher(cleaned, n_simulations=5000, random_seed=rng)
    print(f"\nMonte Carlo p-value (5000 simulations): {p_value:.4f}")


if __name__ == '__main__':
    example_1_tea_tasting()
    example_2_twin_convictions()
    example_3_job_satisfaction()
    example_4_mehta_patel()
    example_5_manual_analysis()
