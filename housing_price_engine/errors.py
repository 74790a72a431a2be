"""
Error taxonomy for the housing price pipeline.

Fatal errors abort the run (ConfigError, DomainError), FitError is fatal to a
single trainer only, EmptyColumnError never leaves the Cleaner, and
CollinearityWarning is informational.
"""


class HousePriceError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(HousePriceError, ValueError):
    """Invalid parameter value. Caller-correctable, fatal to the run."""


class EmptyColumnError(HousePriceError, ValueError):
    """A column has no non-missing values, so median/mode is undefined."""

    def __init__(self, column: str):
        super().__init__(f"Column '{column}' has no non-missing values")
        self.column = column


class DomainError(HousePriceError, ValueError):
    """A value violates a transform precondition (e.g. negative target for log1p)."""


class FitError(HousePriceError, RuntimeError):
    """A trainer cannot proceed with the given training table."""


class CollinearityWarning(UserWarning):
    """One or more linear coefficients are aliased and were left out of the fit."""
