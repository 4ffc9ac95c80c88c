"""
M-spline survival distribution.

Public API:
    mspline_basis(times, knots, degree, integrate) -> basis matrix
    KnotSet, default_knots, uniform_weights, normalize_coefs
    hsurvmspline / Hsurvmspline / psurvmspline / dsurvmspline
    qsurvmspline / rsurvmspline
    rmst_survmspline / mean_survmspline
    BackgroundHazard, HazardShape

All distribution functions take (x, alpha, coefs, knots, degree, ...)
and recycle shorter arguments to the longest one.
"""

from pyextrap.mspline._background import BackgroundHazard
from pyextrap.mspline._basis import (
    KnotSet,
    default_knots,
    mspline_basis,
    uniform_weights,
)
from pyextrap.mspline._common import normalize_coefs
from pyextrap.mspline._distribution import (
    Hsurvmspline,
    dsurvmspline,
    hsurvmspline,
    psurvmspline,
)
from pyextrap.mspline._quantile import qsurvmspline, rsurvmspline
from pyextrap.mspline._rmst import mean_survmspline, rmst_survmspline
from pyextrap.mspline._shape import HazardShape

__all__ = [
    "BackgroundHazard",
    "HazardShape",
    "KnotSet",
    "default_knots",
    "mspline_basis",
    "uniform_weights",
    "normalize_coefs",
    "hsurvmspline",
    "Hsurvmspline",
    "psurvmspline",
    "dsurvmspline",
    "qsurvmspline",
    "rsurvmspline",
    "rmst_survmspline",
    "mean_survmspline",
]
