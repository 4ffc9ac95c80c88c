"""
pyextrap: flexible parametric survival extrapolation with evidence synthesis.

M-spline hazard models fitted to individual-level right-censored data
combined with aggregate external survival counts, with optional cure
fractions, non-proportional hazards and background (relative survival)
hazards.

Submodules:
    mspline: M-spline survival distribution (density, hazard, survival,
             quantile, random variates, RMST)
    synthesis: Log posterior, fitting and posterior summaries
"""

__version__ = "0.1.0"

from pyextrap import mspline
from pyextrap import synthesis
from pyextrap.synthesis import ExternalCounts, survextrap

__all__ = [
    "__version__",
    "mspline",
    "synthesis",
    "survextrap",
    "ExternalCounts",
]
