"""
Core infrastructure for pyextrap.

This module provides shared abstractions and utilities used by the
domain subpackages (mspline, synthesis).

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and numerical tolerances
"""

from pyextrap.core.result import Result
from pyextrap.core.exceptions import (
    PyExtrapError,
    ValidationError,
    DimensionError,
    NumericalError,
    NotPositiveDefiniteError,
    ConvergenceError,
)

__all__ = [
    # Result
    "Result",
    # Exceptions
    "PyExtrapError",
    "ValidationError",
    "DimensionError",
    "NumericalError",
    "NotPositiveDefiniteError",
    "ConvergenceError",
]
