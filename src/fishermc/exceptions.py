"""
Exception and warning hierarchy for fishermc.

All errors inherit from ContingencyAnalysisError so callers can catch any
library error at once. Input problems are also ValueErrors, which is what the
batch runner turns into skipped rows.
"""


class ContingencyAnalysisError(Exception):
    """Base exception for all fishermc errors."""
    pass


class InvalidArgumentError(ContingencyAnalysisError, ValueError):
    """
    Input validation failed.

    Raised for negative or non-integral counts, malformed tables, an
    unrecognised alternative hypothesis or a non-positive simulation count.
    """
    pass


class EmptyTableError(InvalidArgumentError):
    """No counts are left to analyse (all-zero table or empty after cleaning)."""
    pass


class ExactTestError(ContingencyAnalysisError, ArithmeticError):
    """
    The exact Fisher's test could not be completed.

    The test selector recovers from this by falling back to Monte Carlo
    estimation.
    """
    pass


class SimulationLimitError(ContingencyAnalysisError, RuntimeError):
    """The sequential table simulator exceeded its sweep limit."""

    def __init__(self, max_sweeps: int, remaining: int):
        self.max_sweeps = max_sweeps
        self.remaining = remaining
        super().__init__(
            f"Table simulation did not finish within {max_sweeps} sweeps "
            f"({remaining} units left to allocate)"
        )


class OneSidedAlternativeWarning(UserWarning):
    """A one-sided alternative was requested for a table that is not 2x2."""
    pass


class ExactTestFallbackWarning(RuntimeWarning):
    """The exact test failed and a Monte Carlo estimate was used instead."""
    pass
