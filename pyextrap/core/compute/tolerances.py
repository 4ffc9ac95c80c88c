"""
Numerical tolerances and iteration budgets.

Single place for every tolerance used by the root-finder, the quadrature
layer, coefficient normalisation and the backend comparison tiers.
Root-finding and quadrature budgets are hard caps: exceeding one is a
per-entry failure (NaN), never a hang.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


# numpy log posterior: reference
CPU_FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='cpu_fp64',
    description='numpy double precision reference',
)

# torch float64 log posterior: different op ordering only
TORCH_FP64 = ToleranceTier(
    rtol=1e-9,
    atol=1e-10,
    name='torch_fp64',
    description='torch double precision, matches the numpy reference',
)

# Quantities obtained through root-finding or quadrature
INVERSION = ToleranceTier(
    rtol=1e-6,
    atol=1e-8,
    name='inversion',
    description='round trips through the root-finder or quadrature',
)


# Quantile root-finding (brentq)
ROOT_XTOL = 1e-10
ROOT_RTOL = 4 * 2.220446049250313e-16
ROOT_MAX_ITER = 200
# Upper bracket doubles from max(upper boundary knot, 1) at most this often
BRACKET_MAX_DOUBLINGS = 80

# Adaptive quadrature (QUADPACK via scipy.integrate.quad)
QUAD_EPSABS = 1e-9
QUAD_EPSREL = 1e-8
QUAD_LIMIT = 200

# Coefficient rows whose sum deviates from 1 by more than this trigger a warning
COEF_SUM_TOL = 1e-6

# Implied survival may exceed 1 by rounding only
SURVIVAL_EXCESS_TOL = 1e-12

# Relative step for finite-difference gradients and hessians
FD_EPS = 1e-5


def select_tolerance(backend_name: str) -> ToleranceTier:
    """Select the comparison tier for a log-posterior backend."""
    if backend_name.startswith('gpu') or 'torch' in backend_name:
        return TORCH_FP64
    return CPU_FP64
