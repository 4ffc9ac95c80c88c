"""
Shared compute infrastructure for pyextrap.

Submodules:
    timing: Execution timing utilities
    tolerances: Numerical tolerances and iteration budgets
"""

from pyextrap.core.compute.timing import Timer, timed
from pyextrap.core.compute.tolerances import ToleranceTier, select_tolerance

__all__ = [
    # Timing
    "Timer",
    "timed",
    # Tolerances
    "ToleranceTier",
    "select_tolerance",
]
