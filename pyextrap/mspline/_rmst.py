"""
Restricted mean survival time by adaptive quadrature.

    RMST(t | start) = ∫_start^t S_tot(x) / S_tot(start) dx

The integral is split at the upper boundary knot, where the hazard
switches to constant extrapolation, and the internal knots are passed to
QUADPACK as break points. t = inf gives the (conditional) mean.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.integrate import quad

from pyextrap.core.compute.tolerances import QUAD_EPSABS, QUAD_EPSREL, QUAD_LIMIT
from pyextrap.mspline._common import _as_vector, _recycle, warn_failures
from pyextrap.mspline._distribution import _prepare, log_survival_curve
from pyextrap.mspline._quantile import _check_table


def _integrate(func, a: float, b: float, points=None) -> float:
    """quad() returning NaN instead of an unreliable value."""
    out = quad(
        func, a, b,
        points=points if points is not None and len(points) > 0 else None,
        epsabs=QUAD_EPSABS, epsrel=QUAD_EPSREL, limit=QUAD_LIMIT,
        full_output=1,
    )
    # A fourth element is QUADPACK's error message
    if len(out) > 3:
        return np.nan
    return out[0]


def _rmst_one(t, start, alpha, coefs, pcure, knots, degree, background) -> float:
    def log_surv(x):
        return log_survival_curve(
            x, alpha, coefs, knots, degree, pcure=pcure, backhaz=background,
        )

    log_s0 = float(log_surv(start)[0])
    if not np.isfinite(log_s0):
        return np.nan
    # Survival plateaus at pcure unless some background hazard is positive
    if np.isinf(t) and pcure > 0 and (background is None or not np.any(background.hazard > 0)):
        return np.inf

    def integrand(x: float) -> float:
        return float(np.exp(log_surv(x)[0] - log_s0))

    upper = knots.upper
    total = 0.0
    mid = min(t, upper)
    if mid > start:
        breaks = knots.internal[(knots.internal > start) & (knots.internal < mid)]
        total += _integrate(integrand, start, mid, breaks)
    if t > upper:
        total += _integrate(integrand, max(start, upper), t)
    return total


def rmst_survmspline(
    t,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    pcure=0.0,
    backhaz=None,
    start=0.0,
) -> NDArray:
    """Restricted mean survival time up to t, conditional on survival to start.

    Parameters
    ----------
    t : array-like
        Time horizons; inf gives the mean.
    alpha, coefs, knots, degree, pcure
        As for psurvmspline().
    backhaz : BackgroundHazard or None
        Step-function background hazard.
    start : array-like
        Conditioning time (default 0).

    Returns
    -------
    NDArray
        (n,) values; 0 where t <= start, inf for the mean of a cure model
        without a positive background hazard.
    """
    background = _check_table(backhaz)
    args, knots, degree = _prepare(t, alpha, coefs, knots, degree, x_name="t", pcure=pcure)

    sv = _as_vector(start, "start")
    n = 0 if args.n == 0 or len(sv) == 0 else max(args.n, len(sv))
    args = args.recycled(n)
    sv = _recycle(sv, n)

    out = np.full(args.n, np.nan)
    failed = np.zeros(args.n, dtype=bool)
    for i in np.flatnonzero(args.valid & ~np.isnan(sv)):
        if args.x[i] <= sv[i]:
            out[i] = 0.0
            continue
        out[i] = _rmst_one(
            args.x[i], sv[i], args.alpha[i], args.coefs[i], args.pcure[i],
            knots, degree, background,
        )
        failed[i] = np.isnan(out[i])

    warn_failures(failed, "RMST quadrature")
    return out


def mean_survmspline(
    alpha,
    coefs,
    knots,
    degree: int = 3,
    pcure=0.0,
    backhaz=None,
) -> NDArray:
    """Mean survival time, rmst_survmspline(inf, ...)."""
    return rmst_survmspline(
        np.inf, alpha, coefs, knots, degree, pcure=pcure, backhaz=backhaz,
    )
