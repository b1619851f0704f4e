"""Shared fixtures for fishermc tests."""

import numpy as np
import pytest


@pytest.fixture
def strong_positive():
    """2x2 table with a strong positive association."""
    return np.array([[40, 4], [4, 40]])


@pytest.fixture
def strong_negative():
    """Mirror image of strong_positive."""
    return np.array([[4, 40], [40, 4]])


@pytest.fixture
def neutral_table():
    """2x2 table exactly proportional to its margins."""
    return np.array([[5, 5], [5, 5]])


@pytest.fixture
def larger_table():
    """3x3 table with total 45 and many expected frequencies below 5."""
    return np.array([[10, 5, 2], [3, 8, 4], [1, 3, 9]])


@pytest.fixture
def tables_tsv(tmp_path):
    """
    TSV with five tables:
    T1 small 2x2 (exact Fisher), T2 large dense 2x2 (chi-square),
    T3 small 2x3 (Monte Carlo), T4 has a negative count, T5 is all zeros.
    """
    test_file = tmp_path / "tables.tsv"
    test_file.write_text(
        "table_id\trow_label\tcat_a\tcat_b\tcat_c\n"
        "T1\tr1\t3\t1\t0\n"
        "T1\tr2\t1\t3\t0\n"
        "T2\tr1\t50\t30\t0\n"
        "T2\tr2\t20\t40\t0\n"
        "T3\tr1\t1\t2\t1\n"
        "T3\tr2\t3\t3\t6\n"
        "T4\tr1\t-1\t2\t1\n"
        "T4\tr2\t3\t4\t1\n"
        "T5\tr1\t0\t0\t0\n"
        "T5\tr2\t0\t0\t0\n"
    )
    return test_file
